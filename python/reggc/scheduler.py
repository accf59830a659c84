"""
Reconciliation cycle and the fixed-interval loop that drives it.

A cycle fetches both inventories, deletes unreferenced images and triggers
registry garbage collection. Cycles never overlap: each one runs to
completion before the loop waits for the next tick.
"""

import time
from functools import partial
from typing import Any, Callable, List, Optional

from reggc.gc_trigger import trigger_gc
from reggc.image_reference import ImageReference
from reggc.inventory import fetch_registry_images, fetch_workload_images
from reggc.reconciler import Reconciler
from reggc.registry_client import RegistryClient
from reggc.utils.config_manager import ConfigManager, get_core_v1_api
from reggc.utils.error_utils import ReggcError, WorkloadListError, create_kubernetes_error
from reggc.utils.logging_utils import get_logger, log_exception

logger = get_logger(__name__)


def reconcile_and_collect(registry: RegistryClient, core_v1: Any, config: ConfigManager,
                          gc: Optional[Callable[[], None]] = None) -> List[ImageReference]:
    """Run one cycle against already constructed clients.

    Any failure propagates; garbage collection only runs after every
    deletion succeeded. In dry-run mode nothing is deleted and GC is skipped.

    Args:
        registry: Registry API client
        core_v1: Kubernetes CoreV1Api client
        config: Configuration source
        gc: Callable that triggers garbage collection (defaults to trigger_gc for the configured pod)

    Returns:
        The images deleted this cycle
    """
    registry_images = fetch_registry_images(registry, config.get_registry_public_host())
    workload_images = fetch_workload_images(core_v1)

    dry_run = config.is_dry_run()
    deleted = Reconciler(registry, dry_run=dry_run).reconcile(registry_images, workload_images)
    if dry_run:
        logger.info("dry run: %d images would be deleted, skipping gc", len(deleted))
        return deleted

    if gc is None:
        gc = partial(
            trigger_gc,
            core_v1,
            config.get_gc_pod(),
            config.get_gc_namespace(),
            config.get_gc_command(),
            kubectl=config.get_kubectl_path(),
        )
    gc()
    return deleted


def run_cycle(config: ConfigManager) -> List[ImageReference]:
    """Build fresh clients from config and run one reconciliation cycle."""
    registry = RegistryClient(
        config.get_registry_url(),
        tls=config.get_registry_tls(),
        timeout=config.get_registry_timeout(),
    )
    try:
        core_v1 = get_core_v1_api()
    except Exception as e:
        raise create_kubernetes_error(WorkloadListError, "load kubernetes configuration", None, e) from e
    return reconcile_and_collect(registry, core_v1, config)


class Scheduler:
    """Runs a cycle immediately and then once per interval, forever.

    Ticks are fixed-rate. A cycle that overruns one or more ticks drops
    them and the next cycle starts right away. A failed cycle is logged
    and the next attempt is simply the next tick.
    """

    def __init__(self, cycle: Callable[[], Any], interval: float,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self.cycle = cycle
        self.interval = interval
        self.clock = clock
        self.sleep = sleep

    def run_once(self) -> bool:
        """Run one cycle, logging instead of raising. Returns True on success."""
        try:
            self.cycle()
        except ReggcError as e:
            logger.error(e.message)
            if e.suggestions:
                logger.debug(e.format_message())
            return False
        except Exception as e:
            log_exception(logger, "reconciliation cycle failed unexpectedly", e)
            return False
        return True

    def run_forever(self, max_cycles: Optional[int] = None) -> None:
        """Loop until the process is stopped (or max_cycles cycles ran)."""
        cycles = 0
        next_tick = self.clock()
        while max_cycles is None or cycles < max_cycles:
            self.run_once()
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break

            now = self.clock()
            next_tick += self.interval
            if next_tick <= now:
                # Run now for the latest passed tick; earlier ones are dropped
                passed = int((now - next_tick) // self.interval) + 1
                next_tick += (passed - 1) * self.interval
                logger.warning("cycle overran the interval; starting next cycle now")
                continue
            self.sleep(next_tick - now)
