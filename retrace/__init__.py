"""retrace — rebuild replayable call plans from profitable transaction traces."""

__version__ = "0.1.0"
