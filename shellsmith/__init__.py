"""shellsmith - reproducible, multi-platform development shells from a declarative descriptor."""

__version__ = "0.1.0"
