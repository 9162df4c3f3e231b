from typing import Any, List, Mapping, Optional

from ideaqueue.specs.common.enums import IdeaStatus, RevisionType, Stage
from ideaqueue.specs.models.domain import Idea, RevisionEntry
from ideaqueue.shared.idea_store import IdeaStore


class RevisionLedger:
    """Append-only operator feedback, stored newest first on the idea."""

    def __init__(self, store: IdeaStore) -> None:
        self._store = store

    def append(
        self,
        idea_id: str,
        entry: RevisionEntry,
        patch: Optional[Mapping[str, Any]] = None,
        *,
        expected_status: Optional[IdeaStatus] = None,
        lease: Optional[str] = None,
    ) -> Idea:
        """Prepend ``entry`` and apply ``patch`` in a single store write."""
        return self._store.update(
            idea_id,
            dict(patch or {}),
            expected_status=expected_status,
            lease=lease,
            prepend=entry,
        )

    @staticmethod
    def forward_guidance_for(idea: Idea, from_stage: Stage) -> Optional[str]:
        """Guidance left when advancing out of ``from_stage``, if still unconsumed.

        Only the entry written by the transition now running counts; guidance
        from an earlier pass through the same stage has been used already.
        """
        for entry in idea.revisionHistory:
            if (
                entry.type == RevisionType.FORWARD.value
                and entry.stage == Stage(from_stage).value
                and entry.transition == idea.transitionCount
            ):
                return entry.notes
        return None

    @staticmethod
    def history_lines(idea: Idea) -> List[str]:
        return [f"- [{e.stage}/{e.type}] {e.notes}" for e in idea.revisionHistory]
