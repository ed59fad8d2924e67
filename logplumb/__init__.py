"""Building blocks for log and metric pipelines: diodes, metrics, batching,
doppler subscriptions and TLS contexts."""

__version__ = "0.1.0"