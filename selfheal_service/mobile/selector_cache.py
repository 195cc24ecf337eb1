"""
Persistent page-object-model (POM) selector cache.

One JSON file per platform (`pom_android.json`, `pom_ios.json`), scoped inside by
application identity:

  {
    "com.example.app": {
      "login - Login - accessibility-id": "~loginButton"
    }
  }

The file is meant to be read and hand-edited by people, so keys stay in the
"page - element - strategy" form.

Older files are flat (`{"page - element": selector}`, no app level). Their entries
are upgraded to three-part keys and moved under the app the cache is used for.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .locators import classify_selector
from .models import LocatorStrategy

logger = logging.getLogger(__name__)

KEY_SEPARATOR = " - "


@dataclass(frozen=True)
class CacheKey:
    page_name: str
    element_name: str
    strategy: LocatorStrategy

    def render(self) -> str:
        return KEY_SEPARATOR.join([self.page_name, self.element_name, self.strategy.value])

    def __str__(self) -> str:
        return self.render()

    def prefix(self) -> str:
        return cache_key_prefix(self.page_name, self.element_name)


def cache_key_prefix(page_name: str, element_name: str) -> str:
    return f"{page_name}{KEY_SEPARATOR}{element_name}{KEY_SEPARATOR}"


def _key_str(key: Union[CacheKey, str]) -> str:
    return key.render() if isinstance(key, CacheKey) else str(key)


def _migrate_app_entries(entries: dict[str, str]) -> tuple[dict[str, str], bool]:
    """Upgrade legacy "page - element" keys to "page - element - strategy"."""
    migrated: dict[str, str] = {}
    changed = False
    for key, selector in entries.items():
        parts = key.split(KEY_SEPARATOR)
        if len(parts) == 2:
            page, element = parts
            strategy = classify_selector(selector)
            migrated[CacheKey(page, element, strategy).render()] = selector
            changed = True
        else:
            migrated[key] = selector
    return migrated, changed


class SelectorCache:
    """
    File-backed selector store for one platform.

    Every mutation rewrites the whole file before returning. Writes are
    last-write-wins; there is no locking across runs or processes.
    """

    def __init__(self, path: Union[str, Path], platform: str, data: Optional[dict[str, dict[str, str]]] = None):
        self.path = Path(path)
        self.platform = platform
        self._data: dict[str, dict[str, str]] = data if data is not None else {}
        # Flat "page - element - strategy" entries from a file that predates app scoping.
        # They belong to whichever app the cache is first used for.
        self._unscoped: dict[str, str] = {}

    @classmethod
    def path_for(cls, platform: str, *, cache_dir: Union[str, Path] = ".") -> Path:
        return Path(cache_dir) / f"pom_{platform.lower()}.json"

    @classmethod
    def load(
        cls,
        platform: str = "android",
        *,
        cache_dir: Union[str, Path] = ".",
        app_id: Optional[str] = None,
    ) -> "SelectorCache":
        """
        Load the cache for `platform`. Missing or corrupt storage yields an empty cache.

        A flat `{"page - element": selector}` file (the layout before entries were
        scoped by app) is migrated under `app_id`, or under the first app the cache
        is used for when `app_id` is not given.
        """
        path = cls.path_for(platform, cache_dir=cache_dir)
        cache = cls(path, platform)
        if not path.exists():
            return cache
        if path.is_dir():
            logger.warning("POM cache path %s is a directory; starting with an empty cache", path)
            return cache

        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.warning("Could not load POM cache from %s: %s", path.name, e)
            return cache

        if not isinstance(raw, dict):
            logger.warning("Ignoring POM cache %s: expected a JSON object", path.name)
            return cache

        needs_migration = False
        flat: dict[str, str] = {}
        for top_key, entries in raw.items():
            if isinstance(entries, str):
                flat[str(top_key)] = entries
                continue
            if not isinstance(entries, dict):
                logger.warning("Ignoring malformed POM cache entry for app %r in %s", top_key, path.name)
                continue
            clean = {str(k): v for k, v in entries.items() if isinstance(v, str)}
            migrated, changed = _migrate_app_entries(clean)
            cache._data[str(top_key)] = migrated
            needs_migration = needs_migration or changed

        if flat:
            migrated_flat, changed = _migrate_app_entries(flat)
            cache._unscoped = migrated_flat
            if app_id:
                cache._adopt_unscoped(app_id)
                needs_migration = True
            else:
                needs_migration = needs_migration or changed
                logger.info(
                    "%d unscoped POM cache entries in %s will be assigned to the first app used",
                    len(migrated_flat),
                    path.name,
                )

        if needs_migration:
            logger.info("Migrated legacy POM cache entries in %s", path.name)
            cache.save()
        logger.info("Loaded %s POM cache from %s", platform, path.name)
        return cache

    def _adopt_unscoped(self, app_id: str) -> bool:
        """Move flat legacy entries under `app_id`; entries already scoped there win."""
        if not self._unscoped:
            return False
        scoped = self._data.setdefault(app_id, {})
        for key, selector in self._unscoped.items():
            scoped.setdefault(key, selector)
        logger.info("Assigned %d unscoped POM cache entries to app %r", len(self._unscoped), app_id)
        self._unscoped = {}
        return True

    def _entries_for(self, app_id: str) -> dict[str, str]:
        if self._adopt_unscoped(app_id):
            self.save()
        return self._data.get(app_id, {})

    def save(self) -> None:
        """Atomically rewrite the per-platform file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Unassigned flat entries are written back flat so they survive until adopted.
        payload = json.dumps({**self._unscoped, **self._data}, indent=2, ensure_ascii=False)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("POM cache saved to %s", self.path.name)

    def get(self, app_id: str, key: Union[CacheKey, str]) -> Optional[str]:
        return self._entries_for(app_id).get(_key_str(key))

    def put(self, app_id: str, key: Union[CacheKey, str], selector: str) -> None:
        if not selector:
            raise ValueError("selector must be a non-empty string")
        self._adopt_unscoped(app_id)
        self._data.setdefault(app_id, {})[_key_str(key)] = selector
        self.save()

    def invalidate(self, app_id: str, key: Union[CacheKey, str]) -> None:
        entries = self._entries_for(app_id)
        key_str = _key_str(key)
        if not entries or key_str not in entries:
            return
        del entries[key_str]
        self.save()

    def find_by_prefix(
        self, app_id: str, page_name: str, element_name: str
    ) -> Optional[tuple[CacheKey, str]]:
        """First entry for (page, element) under any strategy."""
        prefix = cache_key_prefix(page_name, element_name)
        for key, selector in self._entries_for(app_id).items():
            if not key.startswith(prefix):
                continue
            strategy_raw = key[len(prefix):]
            try:
                strategy = LocatorStrategy(strategy_raw)
            except ValueError:
                strategy = classify_selector(selector)
            return CacheKey(page_name, element_name, strategy), selector
        return None

    def entries(self, app_id: Optional[str] = None) -> dict[str, dict[str, str]]:
        if app_id is not None:
            return {app_id: dict(self._entries_for(app_id))}
        return {k: dict(v) for k, v in self._data.items()}
