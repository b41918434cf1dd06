"""
codegraph: a typed knowledge graph of a source repository, and a query layer
that turns developer requests into structured implementation context.
"""

__version__ = "0.1.0"
