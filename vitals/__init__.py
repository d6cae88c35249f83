"""Patient vital-sign monitoring: streaming ingestion, record storage and threshold alerts.

The ``services`` package holds the pipeline components, ``domain`` the
framework-agnostic models and codecs, ``adapters`` the output sinks.
"""
