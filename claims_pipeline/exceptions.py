"""
Pipeline Errors
===============

Error kinds raised by the claims severity pipeline.

    - LoadError: input file missing, unreadable or not delimited tabular data
    - SchemaError: configured columns absent from a table, or target missing
    - FitError: the modeling backend rejected a data/hyperparameter combination
    - ExportError: predictions and identifiers are misaligned
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for all pipeline failures."""

    stage = "pipeline"

    def __init__(self, message: str, table: Optional[str] = None, column: Optional[str] = None):
        self.table = table
        self.column = column
        context = []
        if table is not None:
            context.append(f"table={table}")
        if column is not None:
            context.append(f"column={column}")
        suffix = f" ({', '.join(context)})" if context else ""
        super().__init__(f"[{self.stage}] {message}{suffix}")


class LoadError(PipelineError):
    stage = "load"


class SchemaError(PipelineError):
    stage = "schema"


class FitError(PipelineError):
    stage = "fit"


class ExportError(PipelineError):
    stage = "export"
