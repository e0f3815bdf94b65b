"""Deployment of multiple sandbox nodes on a single host.

The `Orchestrator` goes through the following states:

    VALIDATING -> ALLOCATING_PORTS -> PROVISIONING_NODES -> SCHEDULING -> FINALIZING -> DONE

A failure while provisioning nodes, running the execution steps or finalizing the deployment
moves it to ROLLING_BACK, where all resources created so far are removed (in reverse order of
creation), and then to FAILED. Failures while validating the request or allocating ports happen
before any side effect, so they go straight to FAILED.
"""

import dataclasses
import datetime
import enum
import json
import logging
import pathlib as pl
import shutil
import typing as tp

from multi_sandbox.provisioning import catalog
from multi_sandbox.provisioning import cleanup
from multi_sandbox.provisioning import exceptions
from multi_sandbox.provisioning import nodes
from multi_sandbox.provisioning import ports
from multi_sandbox.provisioning import provisioner
from multi_sandbox.provisioning import scheduler
from multi_sandbox.provisioning import scripts
from multi_sandbox.provisioning import single_node
from multi_sandbox.provisioning import templates
from multi_sandbox.utils import configuration
from multi_sandbox.utils import helpers
from multi_sandbox.utils import locking
from multi_sandbox.utils import sandbox_log
from multi_sandbox.utils import types as ttypes
from multi_sandbox.utils import versions

LOGGER = logging.getLogger(__name__)

MIN_NODES = 2

# Scripts operating on all nodes, written to the deployment directory
MULTIPLE_SCRIPTS = (
    ("start_all", "start_multi_template"),
    ("restart_all", "restart_multi_template"),
    ("status_all", "status_multi_template"),
    ("test_sb_all", "test_sb_multi_template"),
    ("stop_all", "stop_multi_template"),
    ("clear_all", "clear_multi_template"),
    ("send_kill_all", "send_kill_multi_template"),
    ("use_all", "use_multi_template"),
)

InstalledPortsProviderType = tp.Callable[[pl.Path], ports.ReservedPortsType]


class OrchestratorState(enum.StrEnum):
    VALIDATING = "validating"
    ALLOCATING_PORTS = "allocating_ports"
    PROVISIONING_NODES = "provisioning_nodes"
    SCHEDULING = "scheduling"
    FINALIZING = "finalizing"
    DONE = "done"
    ROLLING_BACK = "rolling_back"
    FAILED = "failed"


@dataclasses.dataclass(frozen=True)
class SandboxBatchRequest:
    """Request for deployment of multiple nodes.

    Attributes:
        version: Version of the database server (`major.minor.rev`).
        basedir: Directory with the database server binaries.
        nodes: Number of nodes (at least 2).
        sandbox_home: Parent directory of the deployment directory.
        base_port: Override of the port derived from version. Node ports start after it.
        mode: Run execution steps sequentially or concurrently.
        installed_ports: Ports used by previous deployments. Ask the installed ports provider
            if not set.
        dir_name: Name of the deployment directory. Derived from version if not set.
        force: Replace an existing deployment in the deployment directory.
        disable_auxiliary: Don't enable the auxiliary (X protocol) port family on the nodes.
        auxiliary_ports: Allocate the auxiliary port family. Derived from version if not set.
        node_label: Prefix of node names and node directories.
        sb_type: Type of the deployment, recorded in metadata.
        max_workers: Cap on parallel workers in concurrent mode.
        load_grants: Load grants into every node after it is started.
    """

    version: str
    basedir: pl.Path
    nodes: int
    sandbox_home: pl.Path = configuration.SANDBOX_HOME
    base_port: int | None = None
    mode: scheduler.ConcurrencyMode = scheduler.ConcurrencyMode.SEQUENTIAL
    installed_ports: frozenset[int] | None = None
    dir_name: str = ""
    force: bool = False
    disable_auxiliary: bool = False
    auxiliary_ports: bool | None = None
    node_label: str = configuration.NODE_PREFIX
    sb_type: str = "multiple"
    max_workers: int = 0
    load_grants: bool = True

    @property
    def sandbox_dir(self) -> pl.Path:
        dir_name = (
            self.dir_name
            or f"{configuration.MULTIPLE_PREFIX}{versions.version_to_name(self.version)}"
        )
        return pl.Path(self.sandbox_home) / dir_name

    @property
    def wants_auxiliary(self) -> bool:
        """Check if the auxiliary port family should be allocated."""
        if self.auxiliary_ports is not None:
            return self.auxiliary_ports
        return versions.supports_mysqlx(self.version)

    def get_base_port(self) -> int:
        """Return the port preceding the ports of the nodes."""
        if self.base_port:
            return self.base_port
        __, __, rev = versions.version_to_list(self.version)
        version_port = versions.version_to_port(self.version)
        return version_port + configuration.MULTIPLE_BASE_PORT + rev * 100


@dataclasses.dataclass
class SandboxBatchResult:
    sandbox_dir: pl.Path
    nodes: list[nodes.NodeDescriptor]
    version: str
    basedir: pl.Path
    sb_type: str
    started_at: datetime.datetime
    finished_at: datetime.datetime
    ports: list[int]
    log_file: str
    data: dict[str, tp.Any]
    report: scheduler.ExecutionReport


def _now() -> datetime.datetime:
    return datetime.datetime.now(tz=datetime.UTC)


class Orchestrator:
    """Deploy multiple sandbox nodes.

    Args:
        installer: Single-node installer, `MySQLNodeInstaller` by default.
        installed_ports_provider: A callable returning ports of previous deployments in
            a given sandbox home. Used when the request doesn't carry the ports, and always for
            re-validation of the allocated ports.
        catalog_file: Path to the catalog of deployments.
        log_dir: Directory for the per-deployment-type log files.
        log_func: A callable for progress messages.
        port_horizon: Number of candidate starting ports scanned by the port allocator.
        check_listening: Treat ports listening on this host as reserved.
    """

    def __init__(
        self,
        *,
        installer: single_node.SingleNodeInstaller | None = None,
        installed_ports_provider: InstalledPortsProviderType | None = None,
        catalog_file: ttypes.FileType | None = None,
        log_dir: pl.Path | None = None,
        log_func: ttypes.LogFuncType | None = None,
        port_horizon: int = 0,
        check_listening: bool | None = None,
    ) -> None:
        self.installer = installer or single_node.MySQLNodeInstaller()
        self.installed_ports_provider = installed_ports_provider or self._get_installed_ports
        self.catalog_file = pl.Path(catalog_file or configuration.SANDBOX_CATALOG)
        self.log_dir = log_dir
        self.log_func = log_func
        self.port_horizon = port_horizon
        self.check_listening = check_listening

        self.state = OrchestratorState.VALIDATING
        self.state_history: list[OrchestratorState] = []
        self.cleanup_stack = cleanup.CleanupStack()
        self._sb_logger: logging.Logger | None = None

    def _get_installed_ports(self, sandbox_home: pl.Path) -> ports.ReservedPortsType:
        return catalog.get_installed_ports(
            sandbox_home=sandbox_home, catalog_file=self.catalog_file
        )

    def _set_state(self, state: OrchestratorState) -> None:
        self.state = state
        self.state_history.append(state)
        LOGGER.debug(f"Orchestrator state: {state}")

    def log(self, msg: str) -> None:
        """Log a message to the deployment log file and to the progress callable."""
        LOGGER.debug(msg)
        if self._sb_logger:
            self._sb_logger.info(msg)
        if self.log_func:
            self.log_func(msg)

    def _validate(self, request: SandboxBatchRequest) -> pl.Path:
        """Validate the request, return path to the deployment directory."""
        if request.nodes < MIN_NODES:
            msg = (
                f"Only {request.nodes} node(s) requested, at least {MIN_NODES} are needed. "
                "For single sandbox deployment, use the 'single' deployment."
            )
            raise exceptions.InvalidRequestError(msg)

        basedir = pl.Path(request.basedir)
        if not basedir.is_dir():
            msg = f"Base directory '{basedir}' does not exist"
            raise exceptions.InvalidRequestError(msg)

        try:
            versions.parse_version(request.version)
        except ValueError as exc:
            raise exceptions.InvalidRequestError(str(exc)) from exc

        if request.base_port is not None and not 0 < request.base_port < ports.MAX_PORT:
            msg = f"Invalid base port '{request.base_port}'"
            raise exceptions.InvalidRequestError(msg)

        sandbox_dir = request.sandbox_dir
        if sandbox_dir.exists() and not request.force:
            msg = f"Directory '{sandbox_dir}' already exists. Use 'force' to override."
            raise exceptions.InvalidRequestError(msg)

        return sandbox_dir

    def _remove_existing(self, sandbox_dir: pl.Path) -> None:
        """Stop and remove existing deployment (the `force` merge policy)."""
        if not sandbox_dir.exists():
            return

        self.log(f"Overwriting directory '{sandbox_dir}'")
        for stop_script in ("stop_all", "stop"):
            stop_path = sandbox_dir / stop_script
            if not helpers.is_executable(stop_path):
                continue
            try:
                helpers.run_command([stop_path], ignore_fail=True)
            except OSError as exc:
                LOGGER.warning(f"Failed to stop existing deployment in '{sandbox_dir}': {exc}")
            break

        shutil.rmtree(sandbox_dir)
        catalog.delete_from_catalog(sandbox_dir=sandbox_dir, catalog_file=self.catalog_file)

    def _get_template_data(
        self, sandbox_dir: pl.Path, node_descs: list[nodes.NodeDescriptor], node_label: str
    ) -> dict[str, tp.Any]:
        date_time = _now().strftime("%c %Z")
        return {
            "APP_VERSION": single_node.APP_VERSION,
            "DATE_TIME": date_time,
            "SANDBOX_DIR": sandbox_dir,
            "NODE_LABEL": node_label,
            "NODE_NUMS": " ".join(str(n.ordinal) for n in node_descs),
            "NODES": [
                {
                    "NODE": n.ordinal,
                    "NODE_PORT": n.port,
                    "NODE_LABEL": node_label,
                    "SANDBOX_DIR": sandbox_dir,
                    "APP_VERSION": single_node.APP_VERSION,
                    "DATE_TIME": date_time,
                }
                for n in node_descs
            ],
        }

    def _finalize(
        self,
        request: SandboxBatchRequest,
        sandbox_dir: pl.Path,
        node_descs: list[nodes.NodeDescriptor],
        data: dict[str, tp.Any],
        log_file: str,
    ) -> list[int]:
        """Write scripts and metadata of the deployment, return ports reserved by it."""
        for data_node in data["NODES"]:
            self.log(f"Creating node script for node {data_node['NODE']}")
            scripts.write_script(
                templates=templates.MULTIPLE_TEMPLATES,
                script_name=f"n{data_node['NODE']}",
                template_name="node_template",
                destdir=sandbox_dir,
                data=data_node,
            )

        self.log("Write multiple sandbox scripts")
        for script_name, template_name in MULTIPLE_SCRIPTS:
            scripts.write_script(
                templates=templates.MULTIPLE_TEMPLATES,
                script_name=script_name,
                template_name=template_name,
                destdir=sandbox_dir,
                data=data,
            )

        reserved_ports = [p for n in node_descs for p in n.ports]

        self.log("Write sandbox description")
        catalog.write_description(
            sandbox_dir=sandbox_dir,
            description=catalog.SandboxDescription(
                basedir=str(request.basedir),
                sb_type=request.sb_type,
                version=request.version,
                port=reserved_ports,
                nodes=len(node_descs),
                log_file=log_file,
            ),
        )

        catalog.update_catalog(
            item=catalog.CatalogItem(
                origin=str(request.basedir),
                sb_type=request.sb_type,
                version=request.version,
                port=reserved_ports,
                nodes=[n.dir_name for n in node_descs],
                destination=str(sandbox_dir),
                log_directory=str(pl.Path(log_file).parent) if log_file else "",
            ),
            catalog_file=self.catalog_file,
        )
        self.cleanup_stack.push(
            "remove from catalog",
            lambda t: catalog.delete_from_catalog(sandbox_dir=t, catalog_file=self.catalog_file),
            sandbox_dir,
        )

        return reserved_ports

    def _rollback(self) -> list[cleanup.CleanupFailure]:
        self._set_state(OrchestratorState.ROLLING_BACK)
        self.log("Rolling back")
        with helpers.ignore_interrupt():
            failures = self.cleanup_stack.unwind()
        self._set_state(OrchestratorState.FAILED)
        return failures

    def _allocate_ports(
        self, request: SandboxBatchRequest, sandbox_dir: pl.Path
    ) -> ports.PortAllocation:
        def _live_reserved() -> ports.ReservedPortsType:
            return self.installed_ports_provider(pl.Path(request.sandbox_home))

        reserved = request.installed_ports
        if reserved is None:
            reserved = frozenset(_live_reserved())

        allocator = ports.PortAllocator(
            reserved_provider=_live_reserved,
            horizon=self.port_horizon,
            check_listening=self.check_listening,
        )
        return allocator.allocate(
            base_port=request.get_base_port(),
            count=request.nodes,
            reserved=reserved,
            sandbox_dir=str(sandbox_dir),
            auxiliary=request.wants_auxiliary,
            auxiliary_optional=request.disable_auxiliary,
        )

    def _deploy(
        self, request: SandboxBatchRequest, sandbox_dir: pl.Path, started_at: datetime.datetime
    ) -> SandboxBatchResult:
        if request.force:
            try:
                self._remove_existing(sandbox_dir)
            except (OSError, locking.LockTimeout) as exc:
                self._set_state(OrchestratorState.FAILED)
                msg = f"Failed to remove existing deployment '{sandbox_dir}': {exc}"
                raise exceptions.InvalidRequestError(msg) from exc

        self._set_state(OrchestratorState.ALLOCATING_PORTS)
        try:
            allocation = self._allocate_ports(request=request, sandbox_dir=sandbox_dir)
        except Exception:
            self._set_state(OrchestratorState.FAILED)
            raise
        node_descs = nodes.build_node_descriptors(
            allocation=allocation, node_label=request.node_label
        )
        for n in node_descs:
            aux_str = f", auxiliary port {n.auxiliary_port}" if n.auxiliary_enabled else ""
            self.log(f"Node {n.ordinal}: port {n.port}{aux_str}, server ID {n.server_id}")

        log_file = str(
            sandbox_log.get_sandbox_log_path(sb_type=request.sb_type, log_dir=self.log_dir)
        )
        data = self._get_template_data(
            sandbox_dir=sandbox_dir, node_descs=node_descs, node_label=request.node_label
        )

        try:
            self._set_state(OrchestratorState.PROVISIONING_NODES)
            try:
                sandbox_dir.mkdir()
            except OSError as exc:
                msg = f"Failed to create directory '{sandbox_dir}': {exc}"
                raise exceptions.ProvisioningError(msg) from exc
            self.cleanup_stack.push("remove directory", cleanup.remove_dir, sandbox_dir)
            self.log(f"Created directory '{sandbox_dir}'")

            node_provisioner = provisioner.NodeProvisioner(
                installer=self.installer, cleanup_stack=self.cleanup_stack, log_func=self.log
            )
            batch = node_provisioner.provision_all(
                nodes.NodeConfig(
                    node=n,
                    version=request.version,
                    basedir=pl.Path(request.basedir),
                    sandbox_dir=sandbox_dir,
                    sb_type=f"{request.sb_type}-node",
                    load_grants=request.load_grants,
                )
                for n in node_descs
            )

            self._set_state(OrchestratorState.SCHEDULING)
            self.log(f"Run {len(batch)} execution step(s)")
            execution_scheduler = scheduler.ExecutionScheduler(
                mode=request.mode, max_workers=request.max_workers, log_func=self.log
            )
            report = execution_scheduler.run(batch)

            self._set_state(OrchestratorState.FINALIZING)
            try:
                reserved_ports = self._finalize(
                    request=request,
                    sandbox_dir=sandbox_dir,
                    node_descs=node_descs,
                    data=data,
                    log_file=log_file,
                )
            except (OSError, KeyError, ValueError, locking.LockTimeout) as exc:
                msg = f"Failed to write scripts or metadata of '{sandbox_dir}': {exc}"
                raise exceptions.ProvisioningError(msg) from exc
            self.cleanup_stack.commit()
        except (KeyboardInterrupt, SystemExit):
            self._rollback()
            raise
        except Exception as exc:
            failures = self._rollback()
            raise exceptions.SandboxBatchError(
                errors=[exc], cleanup_failures=failures, sandbox_dir=str(sandbox_dir)
            ) from exc

        self._set_state(OrchestratorState.DONE)
        self.log(f"{request.sb_type} directory installed in '{sandbox_dir}'")

        return SandboxBatchResult(
            sandbox_dir=sandbox_dir,
            nodes=node_descs,
            version=request.version,
            basedir=pl.Path(request.basedir),
            sb_type=request.sb_type,
            started_at=started_at,
            finished_at=_now(),
            ports=reserved_ports,
            log_file=log_file,
            data=data,
            report=report,
        )

    def create_multiple_sandbox(self, request: SandboxBatchRequest) -> SandboxBatchResult:
        """Deploy the requested nodes.

        Raises:
            InvalidRequestError: The request is not valid. No side effects.
            ResourceExhaustedError: No free ports. No side effects.
            SandboxBatchError: The deployment failed and was rolled back.
        """
        started_at = _now()
        self.state_history = []
        self.cleanup_stack = cleanup.CleanupStack()
        self._set_state(OrchestratorState.VALIDATING)

        try:
            sandbox_dir = self._validate(request)
        except exceptions.InvalidRequestError:
            self._set_state(OrchestratorState.FAILED)
            raise

        try:
            pl.Path(request.sandbox_home).mkdir(parents=True, exist_ok=True)
            self._sb_logger = sandbox_log.sandbox_logger(
                sb_type=request.sb_type, log_dir=self.log_dir
            )
        except OSError as exc:
            self._set_state(OrchestratorState.FAILED)
            msg = f"Cannot prepare sandbox home '{request.sandbox_home}' or log file: {exc}"
            raise exceptions.InvalidRequestError(msg) from exc
        self.log(
            "Multiple sandbox definition: "
            f"{json.dumps(dataclasses.asdict(request), default=str, sort_keys=True)}"
        )

        dir_lock = locking.get_lock(sandbox_dir)
        try:
            dir_lock.acquire()
        except locking.LockTimeout as exc:
            self._set_state(OrchestratorState.FAILED)
            msg = f"Directory '{sandbox_dir}' is locked by another deployment"
            raise exceptions.InvalidRequestError(msg) from exc

        try:
            return self._deploy(request=request, sandbox_dir=sandbox_dir, started_at=started_at)
        finally:
            dir_lock.release()
            # Leave no lock file in the sandbox home
            pl.Path(dir_lock.lock_file).unlink(missing_ok=True)
