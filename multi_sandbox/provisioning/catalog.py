"""Metadata of installed deployments.

* sandbox description (`sbdescription.json`) stored in every deployment directory
* catalog of all deployments on this host, a JSON file keyed by deployment directory

Both are sources of ports that are already reserved by previous deployments.
"""

import dataclasses
import json
import logging
import pathlib as pl

import multi_sandbox.utils.types as ttypes
from multi_sandbox.provisioning import exceptions
from multi_sandbox.utils import configuration
from multi_sandbox.utils import helpers
from multi_sandbox.utils import locking

LOGGER = logging.getLogger(__name__)

DESCRIPTION_FILE = "sbdescription.json"


@dataclasses.dataclass(frozen=True)
class SandboxDescription:
    basedir: str
    sb_type: str
    version: str
    port: list[int]
    nodes: int
    node_num: int = 0
    log_file: str = ""


@dataclasses.dataclass(frozen=True)
class CatalogItem:
    origin: str
    sb_type: str
    version: str
    port: list[int]
    nodes: list[str]
    destination: str
    log_directory: str = ""


def _get_catalog_file(catalog_file: ttypes.FileType | None) -> pl.Path:
    return pl.Path(catalog_file or configuration.SANDBOX_CATALOG)


def write_description(sandbox_dir: ttypes.FileType, description: SandboxDescription) -> pl.Path:
    out_file = pl.Path(sandbox_dir) / DESCRIPTION_FILE
    helpers.write_json(out_file=out_file, content=dataclasses.asdict(description))
    return out_file


def read_description(sandbox_dir: ttypes.FileType) -> SandboxDescription | None:
    """Read sandbox description, return None if there's no valid description."""
    try:
        content = helpers.read_json(pl.Path(sandbox_dir) / DESCRIPTION_FILE)
        return SandboxDescription(**content) if content else None
    except (OSError, ValueError, TypeError) as exc:
        LOGGER.warning(f"Invalid sandbox description in '{sandbox_dir}': {exc}")
        return None


def read_catalog(catalog_file: ttypes.FileType | None = None) -> dict[str, CatalogItem]:
    """Return all catalog items, keyed by deployment directory."""
    catalog_path = _get_catalog_file(catalog_file)
    if not catalog_path.exists():
        return {}
    with locking.file_lock(catalog_path):
        content = helpers.read_json(catalog_path)
    return {k: CatalogItem(**v) for k, v in content.items()}


def update_catalog(item: CatalogItem, catalog_file: ttypes.FileType | None = None) -> None:
    """Add or replace the catalog item of a deployment."""
    catalog_path = _get_catalog_file(catalog_file)
    catalog_path.parent.mkdir(parents=True, exist_ok=True)
    with locking.file_lock(catalog_path):
        content = helpers.read_json(catalog_path)
        content[item.destination] = dataclasses.asdict(item)
        helpers.write_json(out_file=catalog_path, content=content)
    LOGGER.debug(f"Added '{item.destination}' to catalog '{catalog_path}'")


def delete_from_catalog(
    sandbox_dir: ttypes.FileType, catalog_file: ttypes.FileType | None = None
) -> None:
    """Remove the catalog item of a deployment, if present."""
    catalog_path = _get_catalog_file(catalog_file)
    if not catalog_path.exists():
        return
    with locking.file_lock(catalog_path):
        content = helpers.read_json(catalog_path)
        if content.pop(str(sandbox_dir), None) is None:
            return
        helpers.write_json(out_file=catalog_path, content=content)
    LOGGER.debug(f"Removed '{sandbox_dir}' from catalog '{catalog_path}'")


def get_installed_ports(
    sandbox_home: ttypes.FileType | None = None, catalog_file: ttypes.FileType | None = None
) -> frozenset[int]:
    """Return ports used by deployments found in sandbox home and in the catalog."""
    ports: set[int] = set()

    home = pl.Path(sandbox_home or configuration.SANDBOX_HOME)
    if home.is_dir():
        for desc_file in home.glob(f"*/{DESCRIPTION_FILE}"):
            description = read_description(desc_file.parent)
            if description:
                ports.update(description.port)

    try:
        catalog = read_catalog(catalog_file)
    except locking.LockTimeout as exc:
        msg = f"Catalog '{_get_catalog_file(catalog_file)}' is locked by another process: {exc}"
        raise exceptions.InvalidRequestError(msg) from exc
    except (json.JSONDecodeError, TypeError) as exc:
        msg = f"Catalog '{_get_catalog_file(catalog_file)}' is corrupted: {exc}"
        raise RuntimeError(msg) from exc
    for item in catalog.values():
        ports.update(item.port)

    return frozenset(ports)
