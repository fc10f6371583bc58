"""Create general and local memory banks from templates, and write local files."""

from __future__ import annotations

import logging
import random
from datetime import datetime
from pathlib import Path
from typing import Any

from membank.bank.loader import (
    MEMORY_BANK_DIR,
    SYNC_CONFIG_FILE,
    general_dir,
    local_dir,
    write_service_config,
)
from membank.bank.merge import INDEX_FILE, index_template, iso_now
from membank.errors import AlreadyExistsError, ConfigError, ValidationError
from membank.models import InitResult, ServiceConfig, is_plain_name

logger = logging.getLogger(__name__)

CHANGELOG_FILE = "CHANGELOG.md"

META_TEMPLATE = """\
# META: Memory Bank Maintenance

## Reglas para la IA

1. **Memory Bank es la fuente de verdad**
2. **Actualizar Memory Bank ANTES de código**
3. **Cada servicio tiene su propio Memory Bank local**
4. **Los cambios locales se sincronizan al general automáticamente**

## Estructura

```
memory-bank/                    ← GENERAL (este directorio)
├── META-MEMORY-BANK.md
├── 00-PROJECT-OVERVIEW.md
├── 01-ARCHITECTURE.md
├── 02-MICROSERVICES-INDEX.md   ← Auto-generado
├── 03-API-CONTRACTS-GLOBAL.md  ← Consolidado de servicios
└── 04-DATABASE-SCHEMA-GLOBAL.md

servicio-x/
└── memory-bank/                ← LOCAL
    ├── .sync-config.json       ← Config de sincronización
    ├── META.md
    ├── API-CONTRACTS.md
    ├── DATABASE-SCHEMA.md
    └── CHANGELOG.md
```

## Sincronización

Los Memory Banks locales se sincronizan automáticamente al general.
Cada servicio define en `.sync-config.json` qué archivos sincronizar.

---

**Proyecto**: {project}
**Creado**: {timestamp}
"""

OVERVIEW_TEMPLATE = """\
# {project}

## Descripción

[Descripción del proyecto]

## Stack Tecnológico

- Frontend: [tecnología]
- Backend: [tecnología]
- Base de datos: [tecnología]

## Estructura de Servicios

Ver `02-MICROSERVICES-INDEX.md` para la lista completa de servicios.

---

**Última actualización**: {timestamp}
"""

ARCHITECTURE_TEMPLATE = """\
# Arquitectura

## Diagrama General

```
[Cliente] → [API Gateway] → [Servicios]
                              ├── servicio-a
                              ├── servicio-b
                              └── servicio-c
```

## Decisiones Arquitectónicas

1. **Microservicios**: Cada módulo es un servicio independiente
2. **Docker**: Cada servicio corre en su propio container
3. **Memory Bank Jerárquico**: Documentación distribuida con sincronización

---

**Última actualización**: {timestamp}
"""

INDEX_FOOTER = """
---

*Este archivo se actualiza automáticamente cuando se sincronizan los Memory Banks locales.*
"""

SERVICE_META_TEMPLATE = """\
# {service}

## Descripción

{description}

## Información

- **Puerto**: {port}
- **Tecnología**: {technology}
- **Versión**: {version}

## Responsabilidades

- [Responsabilidad 1]
- [Responsabilidad 2]

---

**Creado**: {timestamp}
"""

API_CONTRACTS_TEMPLATE = """\
# API Contracts - {service}

## Base URL

`http://localhost:{port}`

## Endpoints

### Health Check

- GET /health
  - Response: `{{ "status": "ok" }}`

---

*Agregar endpoints aquí*
"""

DATABASE_SCHEMA_TEMPLATE = """\
# Database Schema - {service}

## Tablas

*Agregar tablas aquí*

---

**Nota**: Este servicio usa [PostgreSQL/MongoDB/Redis/etc.]
"""

BUSINESS_LOGIC_TEMPLATE = """\
# Business Logic - {service}

## Reglas de Negocio

*Documentar reglas de negocio aquí*

---
"""

DEPENDENCIES_TEMPLATE = """\
# Dependencies - {service}

## Servicios que Consumo

*Ninguno por ahora*

## Servicios que me Consumen

*Ninguno por ahora*

---
"""

SERVICE_CHANGELOG_TEMPLATE = """\
# Changelog - {service}

## [{version}] - {date}

### Added
- Inicialización del servicio
- Memory Bank local creado

---
"""

DEFAULT_SYNC_MAP = {
    "API-CONTRACTS.md": "03-API-CONTRACTS-GLOBAL.md",
    "DATABASE-SCHEMA.md": "04-DATABASE-SCHEMA-GLOBAL.md",
}


def require_name(value: str | None, what: str) -> str:
    """Validate a caller-supplied service or file name."""
    if not value or not value.strip():
        raise ValidationError(f"{what} is required")
    if not is_plain_name(value) or value == MEMORY_BANK_DIR:
        raise ValidationError(f"Invalid {what}: {value!r}")
    return value


def _write_files(mb_path: Path, files: dict[str, str]) -> list[str]:
    for name, content in files.items():
        (mb_path / name).write_text(content, encoding="utf-8")
    return list(files)


def init_general_memory_bank(project_path: Path, project_name: str) -> InitResult:
    """Create ``<project>/memory-bank`` with the starter documents."""
    mb_path = general_dir(project_path)
    if mb_path.exists():
        raise AlreadyExistsError("Memory Bank already exists")
    mb_path.mkdir(parents=True)

    timestamp = iso_now()
    files = {
        "META-MEMORY-BANK.md": META_TEMPLATE.format(project=project_name, timestamp=timestamp),
        "00-PROJECT-OVERVIEW.md": OVERVIEW_TEMPLATE.format(project=project_name, timestamp=timestamp),
        "01-ARCHITECTURE.md": ARCHITECTURE_TEMPLATE.format(timestamp=timestamp),
        INDEX_FILE: index_template(timestamp) + INDEX_FOOTER,
    }
    created = _write_files(mb_path, files)
    logger.info("Created general Memory Bank for %s (%d files)", project_name, len(created))
    return InitResult(path=mb_path, files_created=created)


def build_default_config(service: str, overrides: dict[str, Any] | None = None) -> ServiceConfig:
    """Default sync config for a new service; ``overrides`` win key by key."""
    overrides = dict(overrides or {})
    data: dict[str, Any] = {
        "service_name": service,
        "version": "0.1.0",
        "description": overrides.get("description") or f"Servicio {service}",
        "port": overrides.get("port") or random.randint(5000, 5999),
        "technology": overrides.get("technology") or "node",
        "sync_to_general": dict(DEFAULT_SYNC_MAP),
        "dependencies": [],
        "auto_sync": True,
        "status": "development",
    }
    data.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return ServiceConfig.from_dict(data)
    except ConfigError as e:
        raise ValidationError(f"Invalid service config: {e}") from e


def init_local_memory_bank(
    project_path: Path,
    service: str,
    overrides: dict[str, Any] | None = None,
) -> InitResult:
    """Create ``<project>/<service>/memory-bank`` with a sync config and starter documents."""
    require_name(service, "service")
    config = build_default_config(service, overrides)
    mb_path = local_dir(project_path, service)
    mb_path.parent.mkdir(parents=True, exist_ok=True)
    if mb_path.exists():
        raise AlreadyExistsError("Local Memory Bank already exists")
    mb_path.mkdir()

    timestamp = iso_now()
    values = {
        "service": service,
        "description": config.description,
        "port": config.port,
        "technology": config.technology,
        "version": config.version,
        "timestamp": timestamp,
        "date": timestamp[:10],
    }
    write_service_config(mb_path, config)
    created = [SYNC_CONFIG_FILE] + _write_files(
        mb_path,
        {
            "META.md": SERVICE_META_TEMPLATE.format(**values),
            "API-CONTRACTS.md": API_CONTRACTS_TEMPLATE.format(**values),
            "DATABASE-SCHEMA.md": DATABASE_SCHEMA_TEMPLATE.format(**values),
            "BUSINESS-LOGIC.md": BUSINESS_LOGIC_TEMPLATE.format(**values),
            "DEPENDENCIES.md": DEPENDENCIES_TEMPLATE.format(**values),
            CHANGELOG_FILE: SERVICE_CHANGELOG_TEMPLATE.format(**values),
        },
    )
    logger.info("Created local Memory Bank for %s", service)
    return InitResult(path=mb_path, files_created=created, config=config)


def append_to_changelog(mb_path: Path, file_name: str, action: str, now: datetime | None = None) -> None:
    changelog = mb_path / CHANGELOG_FILE
    entry = f"\n- {iso_now(now)}: {action} {file_name}"
    if changelog.exists():
        with changelog.open("a", encoding="utf-8") as f:
            f.write(entry)
    else:
        changelog.write_text(f"# Changelog\n{entry}", encoding="utf-8")


def write_local_file(project_path: Path, service: str, file_name: str, content: str) -> Path:
    """Overwrite one file of a local memory bank and log the change in its CHANGELOG."""
    require_name(service, "service")
    require_name(file_name, "fileName")
    if content is None:
        raise ValidationError("content is required")

    mb_path = local_dir(project_path, service)
    mb_path.mkdir(parents=True, exist_ok=True)
    path = mb_path / file_name
    path.write_text(content, encoding="utf-8")
    if file_name != CHANGELOG_FILE:
        append_to_changelog(mb_path, file_name, "updated")
    logger.info("Updated %s/%s (%d chars)", service, file_name, len(content))
    return path
