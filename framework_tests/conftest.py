import pathlib as pl
import typing as tp

import pytest

from framework_tests import common
from multi_sandbox.provisioning import orchestrator
from multi_sandbox.provisioning import single_node

VERSION = "8.0.11"
BASE_PORT = 20000


@pytest.fixture
def basedir(tmp_path: pl.Path) -> pl.Path:
    bdir = tmp_path / "opt" / VERSION
    (bdir / "bin").mkdir(parents=True)
    return bdir


@pytest.fixture
def sandbox_home(tmp_path: pl.Path) -> pl.Path:
    return tmp_path / "sandboxes"


@pytest.fixture
def catalog_file(tmp_path: pl.Path) -> pl.Path:
    return tmp_path / "catalog" / "sandboxes.json"


@pytest.fixture
def make_orchestrator(
    tmp_path: pl.Path, catalog_file: pl.Path
) -> tp.Callable[..., orchestrator.Orchestrator]:
    def _make(
        installer: single_node.SingleNodeInstaller | None = None, **kwargs: tp.Any
    ) -> orchestrator.Orchestrator:
        kwargs.setdefault("installed_ports_provider", lambda home: frozenset())
        kwargs.setdefault("check_listening", False)
        return orchestrator.Orchestrator(
            installer=installer or common.FakeInstaller(),
            catalog_file=catalog_file,
            log_dir=tmp_path / "logs",
            **kwargs,
        )

    return _make


@pytest.fixture
def make_request(
    basedir: pl.Path, sandbox_home: pl.Path
) -> tp.Callable[..., orchestrator.SandboxBatchRequest]:
    def _make(**kwargs: tp.Any) -> orchestrator.SandboxBatchRequest:
        kwargs.setdefault("version", VERSION)
        kwargs.setdefault("nodes", 3)
        kwargs.setdefault("base_port", BASE_PORT)
        kwargs.setdefault("installed_ports", frozenset())
        return orchestrator.SandboxBatchRequest(
            basedir=basedir, sandbox_home=sandbox_home, **kwargs
        )

    return _make
