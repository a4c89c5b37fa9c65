"""pgsend - ships pgmetrics snapshots to a metrics collection service."""

__version__ = "0.1.0"
