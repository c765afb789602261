"""
Sync Artifacts Use Case

Architectural Intent:
- Handler for the ``package-pull`` step
- Images are synced through the bounded-concurrency synchronizer; a
  failing image never cancels the others
- Each image's ``required`` flag decides between abort and warning
- Helm chart and Terraform module repositories are cloned into the workspace

Image Sync Rules:
1. Client registry configured: copy vendor -> client; if the copy fails
   the image is accepted when it already resolves in the client registry
2. Otherwise: verify the image resolves in the vendor registry
"""

from __future__ import annotations
import logging
from pathlib import Path
from typing import Callable, Optional

from keystone.application.orchestration.calls import call_blocking_or_async
from keystone.application.orchestration.synchronizer import (
    SyncOutcome,
    run_all,
    tasks_from,
)
from keystone.domain.entities.step import StepContext
from keystone.domain.errors import AggregateSyncError, KeystoneError
from keystone.domain.ports.registry_port import RegistryPort
from keystone.domain.ports.tool_runner_port import ToolRunnerPort
from keystone.infrastructure.config import ImageReference

logger = logging.getLogger(__name__)


class ArtifactSyncError(KeystoneError):
    pass


class SyncArtifacts:
    def __init__(
        self,
        registry: RegistryPort,
        runner: ToolRunnerPort,
        config,
        on_image: Optional[Callable[[SyncOutcome[ImageReference]], None]] = None,
    ):
        self.registry = registry
        self.runner = runner
        self.config = config
        self.on_image = on_image

    @property
    def artifacts(self):
        return self.config.artifacts

    async def execute(self, ctx: StepContext) -> None:
        if self.artifacts.skip_pull:
            logger.info("Artifact pull disabled (skip_pull); nothing to do")
            return

        await self.sync_images(ctx)
        ctx.raise_if_cancelled()
        await call_blocking_or_async(self.clone_repositories, ctx)

    async def sync_images(self, ctx: Optional[StepContext] = None) -> list[SyncOutcome]:
        images = self.artifacts.images
        if not images:
            logger.info("No images configured")
            return []

        logger.info(
            "Syncing %d image(s) with %d worker(s)",
            len(images),
            self.artifacts.sync_workers,
        )

        def worker(task) -> None:
            if ctx is not None:
                ctx.raise_if_cancelled()
            self._sync_image(task.payload)

        try:
            return await run_all(
                tasks_from(images),
                worker,
                limit=self.artifacts.sync_workers,
                on_result=self.on_image,
            )
        except AggregateSyncError as e:
            required = [o for o in e.outcomes if o.payload.required]
            for outcome in e.outcomes:
                if not outcome.payload.required:
                    logger.warning(
                        "Optional image %s failed to sync: %s",
                        outcome.payload.name,
                        outcome.error,
                    )
            if required:
                names = ", ".join(o.payload.name for o in required)
                raise ArtifactSyncError(
                    f"{len(required)} required image(s) failed to sync: {names}"
                ) from e
            return []

    def _sync_image(self, image: ImageReference) -> None:
        vendor = image.reference(self.artifacts.vendor_registry)
        if not self.artifacts.client_registry:
            self.registry.image_exists(vendor)
            logger.info("Image %s verified in vendor registry", image.name)
            return

        client = image.reference(self.artifacts.client_registry)
        try:
            self.registry.copy_image(vendor, client)
        except Exception as e:
            logger.warning(
                "Copy of %s failed (%s); checking client registry", vendor, e
            )
            self.registry.image_exists(client)
        logger.info("Image %s synced", image.name)

    def clone_repositories(self, ctx: Optional[StepContext] = None) -> None:
        workspace = self.config.workspace
        repos = (
            ("helm", self.artifacts.helm_repo, self.artifacts.helm_ref, workspace / "charts"),
            (
                "terraform",
                self.artifacts.terraform_repo,
                self.artifacts.terraform_ref,
                workspace / "modules",
            ),
        )
        for kind, repo, ref, target in repos:
            if not repo:
                logger.debug("No %s repository configured", kind)
                continue
            if ctx is not None:
                ctx.raise_if_cancelled()
            self._clone(repo, ref, target)

    def _clone(self, repo: str, ref: str, target: Path) -> None:
        if (target / ".git").exists():
            logger.info("%s already cloned; fetching", target)
            self.runner.run(["git", "-C", str(target), "fetch", "--depth", "1"])
            return
        if target.exists() and any(target.iterdir()):
            raise ArtifactSyncError(f"{target} exists and is not a git checkout")

        args = ["git", "clone", "--depth", "1"]
        if ref:
            args += ["--branch", ref]
        self.runner.run([*args, repo, str(target)])
        logger.info("Cloned %s into %s", repo, target)
