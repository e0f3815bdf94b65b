import pathlib as pl

import pytest
from filelock import FileLock

from multi_sandbox.provisioning import catalog
from multi_sandbox.provisioning import exceptions
from multi_sandbox.utils import configuration
from multi_sandbox.utils import locking


def _get_item(destination: str, port: list[int]) -> catalog.CatalogItem:
    return catalog.CatalogItem(
        origin="/opt/mysql/8.0.11",
        sb_type="multiple",
        version="8.0.11",
        port=port,
        nodes=["node1", "node2"],
        destination=destination,
    )


def test_description(tmp_path: pl.Path):
    description = catalog.SandboxDescription(
        basedir="/opt/mysql/8.0.11",
        sb_type="multiple",
        version="8.0.11",
        port=[20001, 20002],
        nodes=2,
    )

    catalog.write_description(sandbox_dir=tmp_path, description=description)

    assert (tmp_path / catalog.DESCRIPTION_FILE).exists()
    assert catalog.read_description(tmp_path) == description


def test_read_description_missing(tmp_path: pl.Path):
    assert catalog.read_description(tmp_path) is None


def test_read_description_invalid(tmp_path: pl.Path):
    (tmp_path / catalog.DESCRIPTION_FILE).write_text('{"foo": 1}')
    assert catalog.read_description(tmp_path) is None


def test_catalog_update_delete(catalog_file: pl.Path):
    assert catalog.read_catalog(catalog_file) == {}

    first = _get_item("/sandboxes/first", [20001, 20002])
    second = _get_item("/sandboxes/second", [20011, 20012])
    catalog.update_catalog(item=first, catalog_file=catalog_file)
    catalog.update_catalog(item=second, catalog_file=catalog_file)

    assert catalog.read_catalog(catalog_file) == {
        "/sandboxes/first": first,
        "/sandboxes/second": second,
    }

    catalog.delete_from_catalog(sandbox_dir="/sandboxes/first", catalog_file=catalog_file)
    # Deleting missing item is a no-op
    catalog.delete_from_catalog(sandbox_dir="/sandboxes/first", catalog_file=catalog_file)

    assert catalog.read_catalog(catalog_file) == {"/sandboxes/second": second}


def test_installed_ports(tmp_path: pl.Path, catalog_file: pl.Path):
    sandbox_home = tmp_path / "sandboxes"
    sb_dir = sandbox_home / "multi_msb_5_7_22"
    sb_dir.mkdir(parents=True)
    catalog.write_description(
        sandbox_dir=sb_dir,
        description=catalog.SandboxDescription(
            basedir="/opt/mysql/5.7.22",
            sb_type="multiple",
            version="5.7.22",
            port=[21723, 21724],
            nodes=2,
        ),
    )
    catalog.update_catalog(
        item=_get_item("/elsewhere/multi_msb_8_0_11", [28112, 38112]), catalog_file=catalog_file
    )

    installed = catalog.get_installed_ports(sandbox_home=sandbox_home, catalog_file=catalog_file)

    assert installed == frozenset({21723, 21724, 28112, 38112})


def test_installed_ports_corrupted_catalog(tmp_path: pl.Path, catalog_file: pl.Path):
    catalog_file.parent.mkdir(parents=True)
    catalog_file.write_text("{not json")

    with pytest.raises(RuntimeError, match="corrupted"):
        catalog.get_installed_ports(sandbox_home=tmp_path, catalog_file=catalog_file)


def test_installed_ports_catalog_locked(
    tmp_path: pl.Path, catalog_file: pl.Path, monkeypatch: pytest.MonkeyPatch
):
    monkeypatch.setattr(configuration, "LOCK_TIMEOUT", 0.1)
    catalog.update_catalog(
        item=_get_item("/sandboxes/first", [20001, 20002]), catalog_file=catalog_file
    )

    with FileLock(locking.get_lock_path(catalog_file)):
        with pytest.raises(exceptions.InvalidRequestError, match="locked"):
            catalog.get_installed_ports(sandbox_home=tmp_path, catalog_file=catalog_file)
