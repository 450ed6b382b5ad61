"""
Application settings service.

Load order is remote store, then the local JSON file, then built-in defaults.
The result is cached until ``save()`` or ``invalidate()``. Saving always
writes the local file; the remote copy is best effort.
"""
import json
import logging
import os
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

import config
from grading import DEFAULT_ACTIVE_DOCS, DEFAULT_RECAP_SUBJECTS
from schemas import AppSettings

logger = logging.getLogger(__name__)

DEFAULT_DOC_CONFIG: Dict[str, Any] = {
    "studentVisible": ["IJAZAH", "AKTA", "KK", "KTP_AYAH", "KTP_IBU", "NISN", "FOTO", "KARTU_PELAJAR", "KIP"],
    "indukVerification": ["AKTA", "KK", "FOTO", "IJAZAH", "KTP_AYAH", "KTP_IBU", "NISN", "KIP", "KARTU_PELAJAR"],
    "ijazahVerification": ["IJAZAH", "AKTA", "KK", "NISN", "KTP_AYAH"],
    "gradeVerification": [],
    "raporPageCount": 3,
    "showParentOnIjazah": False,
}


def default_settings() -> AppSettings:
    return AppSettings(
        admin_name=config.DEFAULT_ADMIN_NAME,
        school_data={"name": config.DEFAULT_SCHOOL_NAME},
        academic_data={"activeYear": config.DEFAULT_ACADEMIC_YEAR, "activeSemester": 1},
        doc_config=dict(DEFAULT_DOC_CONFIG),
        recap_subjects=list(DEFAULT_RECAP_SUBJECTS),
    )


class SettingsService:
    def __init__(self, store=None, local_path: Optional[str] = None):
        self.store = store
        self.local_path = config.LOCAL_SETTINGS_PATH if local_path is None else local_path
        self._cache: Optional[AppSettings] = None
        self.source: Optional[str] = None

    # -- loading -----------------------------------------------------

    def _from_remote(self) -> Optional[Dict[str, Any]]:
        if self.store is None:
            return None
        data = self.store.get_app_settings()
        # Only a record with school data counts as a real configuration
        if data and data.get("schoolData"):
            return data
        return None

    def _from_local(self) -> Optional[Dict[str, Any]]:
        if not self.local_path or not os.path.exists(self.local_path):
            return None
        try:
            with open(self.local_path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Cannot read local settings %s: %s", self.local_path, exc)
            return None
        return data if isinstance(data, dict) else None

    def _merge(self, data: Dict[str, Any]) -> AppSettings:
        merged = default_settings().dump()
        merged.update(data)
        merged["docConfig"] = {**DEFAULT_DOC_CONFIG, **(data.get("docConfig") or {})}
        return AppSettings.model_validate(merged)

    def load(self) -> AppSettings:
        if self._cache is not None:
            return self._cache

        for source, loader in (("remote", self._from_remote), ("local", self._from_local)):
            data = loader()
            if data is None:
                continue
            try:
                self._cache = self._merge(data)
            except PydanticValidationError as exc:
                logger.warning("Ignoring invalid %s settings: %s", source, exc)
                continue
            self.source = source
            break
        else:
            self._cache = default_settings()
            self.source = "default"

        logger.info("Settings loaded from %s", self.source)
        return self._cache

    def invalidate(self) -> None:
        self._cache = None
        self.source = None

    # -- saving ------------------------------------------------------

    def _write_local(self, data: Dict[str, Any]) -> None:
        if not self.local_path:
            return
        try:
            with open(self.local_path, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False, indent=2)
        except OSError as exc:
            logger.warning("Cannot write local settings %s: %s", self.local_path, exc)

    def save(self, settings) -> bool:
        """Persist ``settings`` (AppSettings or wire dict). True when the remote copy was written."""
        if not isinstance(settings, AppSettings):
            settings = self._merge(dict(settings))
        data = settings.dump()
        # Kept at top level for readers of older records
        data["raporPageCount"] = data.get("docConfig", {}).get("raporPageCount", settings.rapor_page_count)

        self.invalidate()
        self._write_local(data)

        remote_ok = False
        if self.store is not None:
            remote_ok = self.store.save_app_settings(data)
            if not remote_ok:
                logger.warning("Settings saved locally only")
        return remote_ok

    # -- accessors ---------------------------------------------------

    def admin_name(self) -> str:
        return self.load().admin_name or config.DEFAULT_ADMIN_NAME

    def school_name(self) -> str:
        return self.load().school_data.get("name") or config.DEFAULT_SCHOOL_NAME

    def active_academic_year(self) -> str:
        academic = self.load().academic_data
        return academic.get("activeYear") or academic.get("year") or config.DEFAULT_ACADEMIC_YEAR

    def rapor_page_count(self) -> int:
        settings = self.load()
        value = settings.doc_config.get("raporPageCount", settings.rapor_page_count)
        try:
            return int(value)
        except (TypeError, ValueError):
            return 3

    def active_docs(self) -> List[str]:
        extra = self.load().model_extra or {}
        docs = extra.get("activeDocs")
        return list(docs) if isinstance(docs, list) else list(DEFAULT_ACTIVE_DOCS)

    def recap_subjects(self) -> List[str]:
        return list(self.load().recap_subjects or DEFAULT_RECAP_SUBJECTS)
