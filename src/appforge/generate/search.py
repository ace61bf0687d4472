"""Builder image search.

A Searcher suggests images for a list of terms, typically the languages and
versions detected in a source repository. StaticSearcher answers from a fixed
catalog; it is the default searcher of the new-app command.
"""

from __future__ import annotations

from typing import Protocol

from appforge.generate.match import ComponentMatch, ImageMetadata


class Searcher(Protocol):
    """Finds candidate images for search terms."""

    def search(self, terms: list[str]) -> list[ComponentMatch]: ...


_MYSQL_VENDOR = {
    "argument": "redhat/mysql:5.6",
    "name": "MySQL 5.6",
    "description": "The Open Source SQL database",
    "image": ImageMetadata(exposed_ports=("3306/tcp",)),
}
_MYSQL_COMMUNITY = {
    "argument": "mysql",
    "name": "MySQL 5.X",
    "description": "Something out there on the Docker Hub.",
    "image": ImageMetadata(exposed_ports=("3306/tcp",)),
}
_PHP = {
    "argument": "redhat/php:5",
    "name": "PHP 5.5",
    "description": "A fast and easy to use scripting language for building websites.",
    "builder": True,
    "image": ImageMetadata(exposed_ports=("8080/tcp",)),
}
_RUBY = {
    "argument": "redhat/ruby:2",
    "name": "Ruby 2.0",
    "description": "A fast and easy to use scripting language for building websites.",
    "builder": True,
    "image": ImageMetadata(exposed_ports=("8080/tcp",)),
}

# term -> candidate images, terms are lower case
DEFAULT_CATALOG: dict[str, list[dict]] = {
    "redhat/mysql:5.6": [_MYSQL_VENDOR],
    "mysql": [_MYSQL_VENDOR, _MYSQL_COMMUNITY],
    "mysql5": [_MYSQL_VENDOR, _MYSQL_COMMUNITY],
    "mysql-5": [_MYSQL_VENDOR, _MYSQL_COMMUNITY],
    "mysql-5.x": [_MYSQL_VENDOR, _MYSQL_COMMUNITY],
    "php": [_PHP],
    "php-5": [_PHP],
    "php5": [_PHP],
    "redhat/php:5": [_PHP],
    "redhat/php-5": [_PHP],
    "ruby": [_RUBY],
}


class StaticSearcher:
    """Searcher backed by a fixed term catalog.

    Terms are compared case-insensitively and tried in order; the first term
    present in the catalog decides the result.
    """

    def __init__(self, catalog: dict[str, list[dict]] | None = None) -> None:
        self.catalog = {k.lower(): v for k, v in (catalog or DEFAULT_CATALOG).items()}

    def search(self, terms: list[str]) -> list[ComponentMatch]:
        for term in terms:
            term = term.lower()
            entries = self.catalog.get(term)
            if entries:
                return [ComponentMatch(value=term, **entry) for entry in entries]
        return []
