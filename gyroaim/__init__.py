"""Phone-as-pointer motion control: wire protocol, liveness and aim pipeline."""

__version__ = "0.1.0"
