"""Adapters binding the domain ports to concrete queues, stores and metric sinks."""
