"""Conversions between the messages of this package and those of
other frameworks. The adapters are imported from their modules, so
that the framework is only required when an adapter is used."""
