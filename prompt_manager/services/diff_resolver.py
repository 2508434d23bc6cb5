"""
Diff Target Resolver
Picks the version a base version is compared against
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from prompt_manager.errors import PromptNotFound, VersionNotFound
from prompt_manager.models.prompt_version import PromptVersion
from prompt_manager.services.stores import PromptStore, VersionStore, StoreNotFound

logger = structlog.get_logger(__name__)


POLICY_EXPLICIT = "explicit"
POLICY_ACTIVE = "active"
POLICY_PREVIOUS = "previous"


@dataclass
class DiffPolicy:
    """
    Selection options for the comparison target.

    Precedence: target_version_id, then compare_to_active, then previous.
    Previous is the default when neither of the first two is requested,
    whatever compare_to_previous says.
    """
    target_version_id: Optional[str] = None
    compare_to_active: bool = False
    compare_to_previous: bool = False

    @property
    def name(self) -> str:
        if self.target_version_id:
            return POLICY_EXPLICIT
        if self.compare_to_active:
            return POLICY_ACTIVE
        return POLICY_PREVIOUS


class DiffResolver:
    """
    Resolves the target version for a diff.

    Every branch returns an existing version of the base's prompt or raises
    PromptNotFound / VersionNotFound.
    """

    def __init__(self, prompts: PromptStore, versions: VersionStore):
        self.prompts = prompts
        self.versions = versions

    def resolve(self, base: PromptVersion, policy: DiffPolicy) -> PromptVersion:
        """
        Args:
            base: The version being diffed
            policy: Which target to select

        Returns:
            Target PromptVersion belonging to base.prompt_id
        """
        policy_name = policy.name

        if policy_name == POLICY_EXPLICIT:
            target = self._explicit(base, policy.target_version_id)
        elif policy_name == POLICY_ACTIVE:
            target = self._active(base)
        else:
            target = self._previous(base)

        logger.debug(
            "diff_target_resolved",
            prompt_id=base.prompt_id,
            base_version=base.version_number,
            target_version=target.version_number,
            policy=policy_name
        )
        return target

    def _explicit(self, base: PromptVersion, target_version_id: str) -> PromptVersion:
        try:
            target = self.versions.get_by_id(target_version_id)
        except StoreNotFound:
            raise VersionNotFound(f"Target version not found: {target_version_id}")

        if target.prompt_id != base.prompt_id:
            logger.warning(
                "diff_target_foreign_prompt",
                prompt_id=base.prompt_id,
                target_version_id=target_version_id,
                target_prompt_id=target.prompt_id
            )
            raise VersionNotFound(f"Target version not found: {target_version_id}")
        return target

    def _active(self, base: PromptVersion) -> PromptVersion:
        try:
            prompt = self.prompts.get_by_id(base.prompt_id)
        except StoreNotFound:
            raise PromptNotFound(base.prompt_id)

        if not prompt.active_version_id:
            raise VersionNotFound(f"Prompt {prompt.id} has no active version")

        try:
            return self.versions.get_by_id(prompt.active_version_id)
        except StoreNotFound:
            raise VersionNotFound(f"Active version not found: {prompt.active_version_id}")

    def _previous(self, base: PromptVersion) -> PromptVersion:
        try:
            return self.versions.get_previous_version(base.prompt_id, base.version_number)
        except StoreNotFound:
            raise VersionNotFound(
                f"No version before v{base.version_number} of prompt {base.prompt_id}"
            )
