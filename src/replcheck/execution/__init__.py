"""
Workload execution: classify, execute, generate, run, record.

Architecture::

    classifier.py   OutcomeClassifier   driver error -> Ok / Fail / Info
    workloads.py    Workload, ClientSession, setup_schema
    executor.py     OperationExecutor   one transaction against one session
    generator.py    TransactionGenerator
    history.py      MicroOp, Operation, History (JSON lines)
    runner.py       WorkloadRunner      concurrent workers for a time limit
"""

from .classifier import OUTCOME_CATEGORIES, RULES, ErrorRule, OutcomeClassifier
from .executor import OperationExecutor
from .generator import TransactionGenerator
from .history import History, MicroOp, Operation
from .runner import WorkloadRunner
from .workloads import (
    LIST_APPEND,
    RW_REGISTER,
    ClientSession,
    Workload,
    get_workload,
    setup_schema,
    table_for,
    table_name,
)

__all__ = [
    "OUTCOME_CATEGORIES",
    "RULES",
    "ErrorRule",
    "OutcomeClassifier",
    "OperationExecutor",
    "TransactionGenerator",
    "History",
    "MicroOp",
    "Operation",
    "WorkloadRunner",
    "LIST_APPEND",
    "RW_REGISTER",
    "ClientSession",
    "Workload",
    "get_workload",
    "setup_schema",
    "table_for",
    "table_name",
]
