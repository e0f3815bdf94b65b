"""Allocation of blocks of free ports for the nodes of a deployment.

A block is selected by scanning candidate starting ports in increasing order and testing the
whole block as a unit. A partially free block is rejected and the scan continues with the next
candidate. Before the allocation is handed over, every port is checked once more against the
live set of reserved ports, so a port taken since the snapshot was made fails the whole
allocation.
"""

import dataclasses
import logging
import typing as tp

import psutil

from multi_sandbox.provisioning import exceptions
from multi_sandbox.utils import configuration

LOGGER = logging.getLogger(__name__)

MAX_PORT = 65535

ReservedPortsType = tp.AbstractSet[int]


@dataclasses.dataclass(frozen=True)
class PortAllocation:
    primary: tuple[int, ...]
    auxiliary: tuple[int, ...] | None = None
    auxiliary_enabled: bool = False

    @property
    def base_port(self) -> int:
        """Return the port preceding the first port of the block."""
        return self.primary[0] - 1

    @property
    def reserved_ports(self) -> list[int]:
        """Return all ports that the deployment reserves on the host."""
        if self.auxiliary and self.auxiliary_enabled:
            return [*self.primary, *self.auxiliary]
        return list(self.primary)


def find_free_port_block(
    first_port: int,
    count: int,
    reserved: ReservedPortsType,
    horizon: int = 0,
) -> tuple[int, ...]:
    """Return the lowest block of `count` consecutive ports, starting at or after `first_port`.

    Raises `ResourceExhaustedError` when there's no free block within `horizon` candidate
    starting ports.
    """
    if count < 1:
        msg = f"Invalid number of ports requested: {count}"
        raise ValueError(msg)

    horizon = horizon or configuration.PORT_SEARCH_HORIZON
    for start in range(first_port, first_port + horizon):
        end = start + count
        if end - 1 > MAX_PORT:
            break
        if not any(p in reserved for p in range(start, end)):
            return tuple(range(start, end))

    msg = (
        f"Could not find {count} free consecutive port(s) starting at or after {first_port} "
        f"(searched {horizon} candidate(s))"
    )
    raise exceptions.ResourceExhaustedError(msg)


def get_listening_ports() -> set[int]:
    """Return ports of services that are listening on this host."""
    try:
        conns = psutil.net_connections(kind="inet")
    except (psutil.Error, OSError) as excp:
        LOGGER.error(f"Failed to fetch listening ports: {excp}")  # noqa: TRY400
        return set()

    return {c.laddr.port for c in conns if c.status == psutil.CONN_LISTEN and c.laddr}


def check_ports(
    ports: tp.Iterable[int], reserved: ReservedPortsType, sandbox_dir: str = ""
) -> None:
    """Check that none of the ports is reserved and that the ports are pairwise distinct."""
    ports = list(ports)
    conflicts = sorted(p for p in set(ports) if p in reserved)
    duplicates = sorted(p for p in set(ports) if ports.count(p) > 1)
    out_of_range = sorted(p for p in set(ports) if not 0 < p <= MAX_PORT)

    if conflicts or duplicates or out_of_range:
        msg = (
            f"Ports {conflicts or duplicates or out_of_range} are not available "
            f"for deployment '{sandbox_dir}'"
        )
        raise exceptions.ResourceExhaustedError(msg)


class PortAllocator:
    """Allocate primary and auxiliary ports for all nodes of a deployment.

    Args:
        reserved_provider: A callable returning the current (live) set of reserved ports,
            used for the final re-validation.
        horizon: Number of candidate starting ports to scan.
        auxiliary_delta: Offset of the auxiliary port family from the primary one.
        check_listening: Treat ports listening on this host as reserved during re-validation.
    """

    def __init__(
        self,
        reserved_provider: tp.Callable[[], ReservedPortsType] | None = None,
        *,
        horizon: int = 0,
        auxiliary_delta: int = 0,
        check_listening: bool | None = None,
    ) -> None:
        self.reserved_provider = reserved_provider
        self.horizon = horizon or configuration.PORT_SEARCH_HORIZON
        self.auxiliary_delta = auxiliary_delta or configuration.MYSQLX_PORT_DELTA
        self.check_listening = (
            configuration.CHECK_LISTENING_PORTS if check_listening is None else check_listening
        )

    def get_live_reserved(self) -> frozenset[int]:
        """Return the current set of reserved ports."""
        live: set[int] = set()
        if self.reserved_provider:
            live.update(self.reserved_provider())
        if self.check_listening:
            live.update(get_listening_ports())
        return frozenset(live)

    def allocate(
        self,
        *,
        base_port: int,
        count: int,
        reserved: ReservedPortsType,
        sandbox_dir: str = "",
        auxiliary: bool = False,
        auxiliary_optional: bool = False,
    ) -> PortAllocation:
        """Allocate `count` ports starting at or after `base_port + 1`.

        When `auxiliary` is set, allocate also block of auxiliary ports. Failure to allocate
        the auxiliary ports is fatal, unless `auxiliary_optional` is set (the caller disabled
        the auxiliary feature). In that case the auxiliary ports are left out.

        The `reserved` snapshot is never modified.
        """
        primary = find_free_port_block(
            first_port=base_port + 1, count=count, reserved=reserved, horizon=self.horizon
        )
        LOGGER.debug(f"Selected ports {primary} for '{sandbox_dir}'")

        aux_block: tuple[int, ...] | None = None
        if auxiliary:
            aux_base = primary[0] - 1 + self.auxiliary_delta
            try:
                aux_block = find_free_port_block(
                    first_port=aux_base + 1,
                    count=count,
                    reserved={*reserved, *primary},
                    horizon=self.horizon,
                )
            except exceptions.ResourceExhaustedError:
                if not auxiliary_optional:
                    raise
                LOGGER.warning(f"No auxiliary ports available for '{sandbox_dir}', skipping")

        # Re-validate all the ports against the live reserved ports
        live_reserved = self.get_live_reserved() | frozenset(reserved)
        check_ports(ports=primary, reserved=live_reserved, sandbox_dir=sandbox_dir)
        if aux_block:
            try:
                check_ports(
                    ports=[*primary, *aux_block], reserved=live_reserved, sandbox_dir=sandbox_dir
                )
            except exceptions.ResourceExhaustedError:
                if not auxiliary_optional:
                    raise
                LOGGER.warning(f"Auxiliary ports {aux_block} were taken meanwhile, skipping")
                aux_block = None

        return PortAllocation(
            primary=primary,
            auxiliary=aux_block,
            auxiliary_enabled=bool(aux_block) and not auxiliary_optional,
        )
