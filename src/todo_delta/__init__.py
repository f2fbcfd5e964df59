"""todo-delta — annotation identity, diffing and live tracking."""

__version__ = "0.1.0"
