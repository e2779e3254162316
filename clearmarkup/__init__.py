"""ClearMarkup: a fluent query builder over a SQLAlchemy data-access layer."""

from clearmarkup.__version__ import __version__
