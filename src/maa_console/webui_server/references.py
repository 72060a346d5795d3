from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from .composer import COLLECTION_TASK_ID
from .errors import BackendError, NotFoundError, ResolverBusyError, TransportError, ValidationError
from .state import ControllerState

logger = logging.getLogger(__name__)

# When the lookup service is unreachable an ambiguous reference is treated as
# a collection. Set to False to surface the transport error instead.
FAIL_OPEN_ON_TRANSPORT_ERROR = True

COLLECTION_NOTE = (
    "This is a job collection covering several stages. "
    'The "s" suffix is added automatically when it runs.'
)
UNTITLED_JOB = "Untitled job"
UNKNOWN_STAGE = "Unknown stage"
UNKNOWN_OPERATORS = "Unknown"

INFO_CLEAR_SECONDS = 1.5
ERROR_CLEAR_SECONDS = 2.0

_REFERENCE_RE = re.compile(r"^maa://(\d+)(s?)$")

Notifier = Callable[[str, float | None], None]


class JobLookup(Protocol):
    async def get_copilot(self, job_id: str) -> dict[str, Any]: ...


@dataclass(frozen=True)
class ParsedReference:
    job_id: str
    has_suffix: bool


@dataclass(frozen=True)
class ReferenceResolution:
    kind: str
    job_id: str
    title: str
    source_text: str
    stage: str = ""
    operators: tuple[str, ...] = ()
    note: str = ""
    auto_add_suffix: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "job_id": self.job_id,
            "title": self.title,
            "stage": self.stage,
            "operators": list(self.operators),
            "note": self.note,
            "auto_add_suffix": self.auto_add_suffix,
        }


def parse_reference(text: str) -> ParsedReference:
    match = _REFERENCE_RE.match((text or "").strip())
    if not match:
        raise ValidationError("Enter a valid job URI, e.g. maa://26766.")
    return ParsedReference(job_id=match.group(1), has_suffix=match.group(2) == "s")


def _single_from_document(parsed: ParsedReference, document: dict[str, Any], source_text: str) -> ReferenceResolution:
    doc = document.get("doc") if isinstance(document.get("doc"), dict) else {}
    opers = document.get("opers") if isinstance(document.get("opers"), list) else []
    operators = tuple(
        str(item["name"]) for item in opers if isinstance(item, dict) and item.get("name")
    )
    return ReferenceResolution(
        kind="single",
        job_id=parsed.job_id,
        title=str(doc.get("title") or UNTITLED_JOB),
        source_text=source_text,
        stage=str(document.get("stage_name") or UNKNOWN_STAGE),
        operators=operators or (UNKNOWN_OPERATORS,),
    )


def _collection(parsed: ParsedReference, source_text: str) -> ReferenceResolution:
    return ReferenceResolution(
        kind="collection",
        job_id=parsed.job_id,
        title="Job collection",
        source_text=source_text,
        note=COLLECTION_NOTE,
        auto_add_suffix=not parsed.has_suffix,
    )


class ReferenceResolver:
    def __init__(
        self,
        lookup: JobLookup,
        state: ControllerState,
        *,
        fail_open: bool = FAIL_OPEN_ON_TRANSPORT_ERROR,
        notify: Notifier | None = None,
    ) -> None:
        self.lookup = lookup
        self.state = state
        self.fail_open = fail_open
        self.notify = notify

    def _notify(self, message: str, clear_after: float | None = None) -> None:
        if self.notify is not None:
            self.notify(message, clear_after)

    async def resolve(self, task_id: str = COLLECTION_TASK_ID) -> ReferenceResolution:
        """Classify the reference typed into ``task_id`` and bind the outcome.

        Malformed input raises ``ValidationError`` before any lookup. A
        second call while one is in flight raises ``ResolverBusyError``. Only
        the collection-capable task takes references.
        """
        if task_id != COLLECTION_TASK_ID:
            raise ValidationError(f"Task '{task_id}' does not resolve job references.")
        if self.state.is_resolving:
            raise ResolverBusyError("A job lookup is already in progress.")
        source_text = self.state.input_for(task_id)
        try:
            parsed = parse_reference(source_text)
        except ValidationError as exc:
            self._notify(f"❌ {exc}", ERROR_CLEAR_SECONDS)
            raise

        self.state.begin_resolve()
        self._notify("Fetching job information...")
        try:
            resolution = await self._lookup(parsed, source_text)
        except Exception as exc:
            self._notify(f"❌ {exc}", ERROR_CLEAR_SECONDS)
            raise
        finally:
            self.state.finish_resolve()

        if not self.state.bind_resolution(task_id, resolution):
            logger.info("discarding resolution for %s: input changed during lookup", task_id)
            self._notify("Job input changed during lookup; result discarded.", INFO_CLEAR_SECONDS)
            return resolution
        if resolution.kind == "single":
            self._notify(f"✓ Found job: {resolution.title}", INFO_CLEAR_SECONDS)
        else:
            suffix_note = " (the s suffix will be added)" if resolution.auto_add_suffix else ""
            self._notify(f"✓ Recognized job collection {resolution.job_id}{suffix_note}", INFO_CLEAR_SECONDS)
        return resolution

    async def _lookup(self, parsed: ParsedReference, source_text: str) -> ReferenceResolution:
        try:
            document = await self.lookup.get_copilot(parsed.job_id)
        except NotFoundError:
            return _collection(parsed, source_text)
        except BackendError:
            raise
        except Exception as exc:
            if not self.fail_open:
                if isinstance(exc, TransportError):
                    raise
                raise TransportError(str(exc) or type(exc).__name__) from exc
            logger.warning("job lookup for %s failed (%s); assuming a collection", parsed.job_id, exc)
            return _collection(parsed, source_text)
        return _single_from_document(parsed, document, source_text)
