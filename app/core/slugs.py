# app/core/slugs.py
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

_WHITESPACE = re.compile(r"\s+")
_NOT_SLUG = re.compile(r"[^a-z0-9-]")
_HYPHENS = re.compile(r"-{2,}")


def slugify(name: str) -> str:
    """
    URL-safe slug for a category/subcategory name.

      - lowercase + trim
      - '&' -> '-and-'
      - whitespace runs -> '-'
      - drop everything outside [a-z0-9-]
      - collapse repeated '-' and strip them from both ends

    Idempotent: slugify(slugify(x)) == slugify(x).
    """
    value = name.lower().strip()
    value = value.replace("&", "-and-")
    value = _WHITESPACE.sub("-", value)
    value = _NOT_SLUG.sub("", value)
    value = _HYPHENS.sub("-", value)
    return value.strip("-")


def deslugify(slug: str) -> str:
    """
    Display name guess for a slug ("home-and-living" -> "Home And Living").

    Lossy: case, punctuation and '&' are not recovered. Use SlugIndex when
    the real name is needed.
    """
    return " ".join(word.capitalize() for word in slug.split("-") if word)


@dataclass
class SlugIndex:
    """
    Reverse lookup from slug to the real category/subcategory name.

    Built once per hierarchy; unknown slugs resolve to None.
    """

    categories: dict[str, str] = field(default_factory=dict)
    subcategories: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_hierarchy(cls, hierarchy: Mapping[str, Iterable[str]]) -> "SlugIndex":
        index = cls()
        for category, subcategories in hierarchy.items():
            index.categories.setdefault(slugify(category), category)
            for sub in subcategories:
                index.subcategories.setdefault(slugify(sub), sub)
        return index

    def resolve_category(self, slug: str | None) -> str | None:
        if not slug:
            return None
        return self.categories.get(slugify(slug))

    def resolve_subcategory(self, slug: str | None) -> str | None:
        if not slug:
            return None
        return self.subcategories.get(slugify(slug))
