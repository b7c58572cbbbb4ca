from __future__ import annotations

import importlib.util
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import RegistryError
from .gate_config import DEFAULT_SOURCES_PATH
from .sources import load_registry


_SECRET_TOKENS = ("key", "token", "secret", "password", "pass")


def _is_secret_name(name: str) -> bool:
    lowered = (name or "").lower()
    return any(token in lowered for token in _SECRET_TOKENS)


def redact_value(value: str, keep: int = 4) -> str:
    raw = (value or "").strip()
    if not raw:
        return ""
    if len(raw) <= keep * 2:
        return "*" * len(raw)
    return f"{raw[:keep]}...{raw[-keep:]}"


def _redacted_env_value(name: str, value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return redact_value(value) if _is_secret_name(name) else value


def _env_present(*names: str) -> Optional[str]:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return None


def _check_playwright_available() -> bool:
    return importlib.util.find_spec("playwright") is not None


def build_doctor_report(*, sources_path: Optional[Path] = None) -> Dict[str, Any]:
    report: Dict[str, Any] = {
        "generated_at": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
        "ok": True,
        "checks": [],
    }

    def add_check(
        name: str,
        status: bool,
        *,
        detail: Optional[str] = None,
        remedy: Optional[str] = None,
        level: str = "warn",
        value: Optional[str] = None,
    ) -> None:
        entry = {
            "name": name,
            "status": "ok" if status else "missing",
            "level": level,
            "detail": detail,
        }
        if remedy:
            entry["remedy"] = remedy
        if value is not None:
            entry["value"] = _redacted_env_value(name, value)
        report["checks"].append(entry)
        if not status and level == "warn":
            report["ok"] = False

    playwright_ok = _check_playwright_available()
    add_check(
        "playwright",
        playwright_ok,
        detail="browser renderer available" if playwright_ok else "browser renderer unavailable",
        remedy="Install Playwright and run `playwright install --with-deps chromium`, or set NEWSGATE_RENDERER=static.",
        level="warn",
    )

    llm_key = _env_present("NEWSGATE_LLM_API_KEY", "OPENAI_API_KEY")
    add_check(
        "NEWSGATE_LLM_API_KEY",
        bool(llm_key),
        detail="rewrites enabled" if llm_key else "rewrites will always use the raw extraction",
        remedy="Set NEWSGATE_LLM_API_KEY (or OPENAI_API_KEY).",
        level="warn",
        value=llm_key,
    )

    api_base = os.getenv("NEWSGATE_LLM_API_BASE")
    if api_base:
        add_check("NEWSGATE_LLM_API_BASE", True, detail="custom endpoint", level="info", value=api_base)

    registry_path = Path(os.getenv("NEWSGATE_SOURCES_PATH") or sources_path or DEFAULT_SOURCES_PATH)
    try:
        registry = load_registry(registry_path)
    except RegistryError as exc:
        add_check(
            "NEWSGATE_SOURCES_PATH",
            False,
            detail=str(exc),
            remedy="Point NEWSGATE_SOURCES_PATH at a valid registry JSON or unset it.",
            level="warn",
        )
    else:
        add_check(
            "NEWSGATE_SOURCES_PATH",
            True,
            detail=f"{len(registry)} trusted sources from {registry_path}",
            level="warn",
        )

    resolve_dns = os.getenv("NEWSGATE_RESOLVE_DNS", "1").strip().lower() not in {"0", "false", "no", "off", ""}
    add_check(
        "NEWSGATE_RESOLVE_DNS",
        resolve_dns,
        detail="resolved addresses are re-checked" if resolve_dns else "DNS re-check disabled",
        remedy="Unset NEWSGATE_RESOLVE_DNS outside of tests.",
        level="info",
    )

    return report


def format_doctor_report(report: Dict[str, Any]) -> str:
    lines: List[str] = []
    lines.append("Newsgate doctor")
    lines.append(f"Generated: {report.get('generated_at')}")
    lines.append("Values are redacted where applicable.")
    lines.append("")
    for check in report.get("checks", []):
        name = check.get("name", "check")
        status = check.get("status", "unknown")
        level = check.get("level", "info")
        detail = check.get("detail")
        value = check.get("value")
        label = f"{name}: {status}"
        if value:
            label = f"{label} ({value})"
        lines.append(f"- [{level}] {label}")
        if detail:
            lines.append(f"  detail: {detail}")
        remedy = check.get("remedy")
        if remedy and status != "ok":
            lines.append(f"  remedy: {remedy}")
    return "\n".join(lines).rstrip() + "\n"
