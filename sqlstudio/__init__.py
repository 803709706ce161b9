"""
sqlstudio - Workflow execution engine for a multi-database SQL studio

Runs jobs made of SQL Server queries, Redshift queries and in-memory merges
of their results, recording every run as an execution.
"""

__version__ = "0.1.0"


__all__ = ["JobExecutor", "load_config", "get_studio_home", "__version__"]

from .config import get_studio_home, load_config
from .executor import JobExecutor
