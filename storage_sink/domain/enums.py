"""Domain enumerations for the storage sink."""

from enum import Enum


class Operation(str, Enum):
    """Public sink operation observed by the metrics channel."""

    WRITE = "write"
    READ = "read"
    DELETE = "delete"
    EXIST = "exist"
