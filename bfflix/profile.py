"""Local edit buffer for the profile screen and its reconciliation with the server."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from .cancellation import OperationScope
from .catalog import ServiceCatalog
from .context import SessionContext
from .errors import InvalidTransition, SaveError, ValidationError
from .models import CanonicalProfile, StreamingService
from .normalize import extract_items, normalize_batch, normalize_profile, normalize_service, record_id
from .services.api import BFFlixClient
from .utils import encode_data_url, is_image_data_url

logger = logging.getLogger(__name__)

USERNAME_RE = re.compile(r"^[a-z0-9._-]{3,30}$", re.IGNORECASE)
DEFAULT_AVATAR_MAX_BYTES = 600 * 1024
SERVICE_KEYS = ("data", "items", "services", "serviceIds")


class ProfilePhase(str, Enum):
    VIEWING = "viewing"
    EDITING = "editing"
    VALIDATING = "validating"
    SAVING = "saving"


@dataclass
class ProfileDraft:
    """Unsaved profile edits.

    ``avatar_url`` holds either a remote URL or, after an upload, a base64
    ``data:`` URL that is only committed by a successful save.
    """

    name: str = ""
    username: str = ""
    avatar_url: str = ""
    selected_service_ids: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    dirty: bool = False

    def submission(self) -> dict[str, Any]:
        """Return the ``PATCH /me`` body for this draft."""

        changes: dict[str, Any] = {
            "name": self.name.strip(),
            "avatarUrl": self.avatar_url.strip(),
        }
        username = self.username.strip()
        if username:
            changes["username"] = username.lower()
        return changes


def validate_name(value: str) -> str | None:
    if not value.strip():
        return "Name is required."
    return None


def validate_username(value: str) -> str | None:
    """Blank usernames are allowed and left out of the submission."""

    username = value.strip()
    if not username:
        return None
    if not USERNAME_RE.match(username):
        return "Username must be 3-30 characters: letters, numbers, '.', '_' or '-'."
    return None


def validate_avatar_upload(
    content: bytes, mime_type: str, *, max_bytes: int = DEFAULT_AVATAR_MAX_BYTES
) -> str | None:
    if not (mime_type or "").strip().lower().startswith("image/"):
        return "Please upload an image file (png, jpg, gif, webp)."
    if len(content) > max_bytes:
        return f"Avatar must be under {max_bytes // 1024}KB. Try a smaller image."
    if not content:
        return "Failed to read image. Please try another file."
    return None


def validate_draft(draft: ProfileDraft) -> dict[str, str]:
    errors: dict[str, str] = {}
    name_error = validate_name(draft.name)
    if name_error:
        errors["name"] = name_error
    username_error = validate_username(draft.username)
    if username_error:
        errors["username"] = username_error
    avatar = draft.avatar_url.strip()
    if avatar.startswith("data:") and not is_image_data_url(avatar):
        errors["avatar"] = "Avatar must be an embedded image."
    return errors


class ProfileReconciler:
    """Owns canonical profile state, the service selection and the edit draft.

    Phases run ``VIEWING -> EDITING -> VALIDATING -> SAVING -> VIEWING``; a
    failed validation or save returns to ``EDITING`` with the draft intact.
    """

    def __init__(
        self,
        client: BFFlixClient,
        session: SessionContext,
        *,
        catalog: ServiceCatalog | None = None,
        avatar_max_bytes: int = DEFAULT_AVATAR_MAX_BYTES,
    ) -> None:
        self._client = client
        self._session = session
        self._avatar_max_bytes = avatar_max_bytes
        self.catalog = catalog if catalog is not None else ServiceCatalog()
        self._scope = OperationScope("profile")
        self._profile = CanonicalProfile()
        self._selected: list[str] = []
        self._draft: ProfileDraft | None = None
        self._phase = ProfilePhase.VIEWING

    @property
    def phase(self) -> ProfilePhase:
        return self._phase

    @property
    def profile(self) -> CanonicalProfile:
        return self._profile

    @property
    def selected_service_ids(self) -> list[str]:
        return list(self._selected)

    @property
    def selected_services(self) -> list[StreamingService]:
        return [
            service
            for service in (self.catalog.get(service_id) for service_id in self._selected)
            if service is not None
        ]

    @property
    def draft(self) -> ProfileDraft | None:
        return self._draft

    async def load(self) -> bool:
        """Fetch profile, catalog and selection; False when the result was discarded."""

        token = self._scope.issue()
        profile_payload, catalog_payload, selected_payload = await asyncio.gather(
            self._client.fetch_profile(session=self._session),
            self._client.fetch_streaming_services(session=self._session),
            self._client.fetch_user_services(session=self._session),
        )
        if not token.current:
            logger.debug("Discarding profile load #%s", token.sequence)
            return False

        self._profile = normalize_profile(profile_payload)
        catalog = normalize_batch(
            catalog_payload, normalize_service, kind="streaming service", keys=SERVICE_KEYS
        )
        self.catalog.merge(catalog.items)
        selection = self._selection_from(selected_payload)
        self._selected = selection if selection is not None else []
        return True

    def begin_edit(self) -> ProfileDraft:
        if self._phase is ProfilePhase.EDITING and self._draft is not None:
            return self._draft
        if self._phase is not ProfilePhase.VIEWING:
            raise InvalidTransition(f"Cannot start editing while {self._phase.value}")
        self._draft = ProfileDraft(
            name=self._profile.name,
            username=self._profile.username or "",
            avatar_url=self._profile.avatar_url or "",
            selected_service_ids=self.catalog.order_ids(self._selected),
        )
        self._phase = ProfilePhase.EDITING
        return self._draft

    def cancel_edit(self) -> None:
        self._require_editing()
        self._draft = None
        self._phase = ProfilePhase.VIEWING

    def set_name(self, value: str) -> None:
        draft = self._require_editing()
        draft.name = value
        draft.errors.pop("name", None)
        draft.dirty = True

    def set_username(self, value: str) -> None:
        draft = self._require_editing()
        draft.username = value
        draft.errors.pop("username", None)
        draft.dirty = True

    def set_avatar_url(self, value: str) -> None:
        draft = self._require_editing()
        draft.avatar_url = value.strip()
        draft.errors.pop("avatar", None)
        draft.dirty = True

    def clear_avatar(self) -> None:
        self.set_avatar_url("")

    def attach_avatar(self, content: bytes, mime_type: str) -> bool:
        """Hold an uploaded image in the draft; rejected uploads keep the previous avatar."""

        draft = self._require_editing()
        error = validate_avatar_upload(content, mime_type, max_bytes=self._avatar_max_bytes)
        if error:
            draft.errors["avatar"] = error
            return False
        draft.avatar_url = encode_data_url(content, mime_type.strip().lower())
        draft.errors.pop("avatar", None)
        draft.dirty = True
        return True

    def toggle_service(self, service_id: str) -> bool:
        """Select or deselect a service; returns whether it is now selected."""

        draft = self._require_editing()
        selected = list(draft.selected_service_ids)
        if service_id in selected:
            selected.remove(service_id)
            now_selected = False
        else:
            selected.append(service_id)
            now_selected = True
        draft.selected_service_ids = self.catalog.order_ids(selected)
        draft.dirty = True
        return now_selected

    def validate(self) -> dict[str, str]:
        draft = self._require_editing()
        draft.errors = validate_draft(draft)
        return dict(draft.errors)

    async def save(self) -> None:
        """Validate the draft, then send both updates concurrently.

        Raises :class:`ValidationError` before any request when the draft is
        invalid, and :class:`SaveError` naming the failed part(s) otherwise.
        The two updates are independent: a part that succeeded is reflected in
        canonical state even when the other failed.
        Results that arrive after :meth:`dispose` change nothing; the draft
        stays open for editing.
        """

        draft = self._require_editing()
        self._phase = ProfilePhase.VALIDATING
        errors = validate_draft(draft)
        draft.errors = errors
        if errors:
            self._phase = ProfilePhase.EDITING
            raise ValidationError(errors)

        changes = draft.submission()
        service_ids = list(draft.selected_service_ids)
        self._phase = ProfilePhase.SAVING
        token = self._scope.issue()
        profile_result, services_result = await asyncio.gather(
            self._client.update_profile(changes, session=self._session),
            self._client.replace_user_services(service_ids, session=self._session),
            return_exceptions=True,
        )
        for result in (profile_result, services_result):
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result
        if token.cancelled:
            logger.info("Discarding profile save #%s after teardown", token.sequence)
            self._phase = ProfilePhase.EDITING
            return

        profile_error = profile_result if isinstance(profile_result, Exception) else None
        services_error = services_result if isinstance(services_result, Exception) else None

        if profile_error is None:
            self._profile = self._reconciled_profile(profile_result, changes)
        if services_error is None:
            selection = self._selection_from(services_result)
            self._selected = selection if selection is not None else self.catalog.order_ids(service_ids)

        if profile_error is None and services_error is None:
            self._draft = None
            self._phase = ProfilePhase.VIEWING
            return

        failure = SaveError(profile_error=profile_error, services_error=services_error)
        logger.warning("%s", failure)
        draft.errors["form"] = str(failure)
        self._phase = ProfilePhase.EDITING
        raise failure

    def dispose(self) -> None:
        self._scope.close()

    def _require_editing(self) -> ProfileDraft:
        if self._phase is not ProfilePhase.EDITING or self._draft is None:
            raise InvalidTransition(f"Profile is not being edited ({self._phase.value})")
        return self._draft

    @staticmethod
    def _reconciled_profile(payload: Any, changes: Mapping[str, Any]) -> CanonicalProfile:
        profile = normalize_profile(payload)
        if profile.name:
            return profile
        # Some deployments answer PATCH /me with a bare acknowledgement.
        return CanonicalProfile(
            name=changes["name"],
            username=changes.get("username"),
            avatar_url=changes.get("avatarUrl") or None,
        )

    def _selection_from(self, payload: Any) -> list[str] | None:
        """Return the selected ids in a services payload, merging new services into the catalog.

        None means the payload carried no list at all.
        """

        if not isinstance(payload, (list, Mapping)):
            return None
        if isinstance(payload, Mapping) and not any(
            isinstance(payload.get(key), list) for key in SERVICE_KEYS
        ):
            return None
        entries = extract_items(payload, SERVICE_KEYS)
        services = [
            service
            for service in (normalize_service(entry) for entry in entries if isinstance(entry, Mapping))
            if service is not None
        ]
        self.catalog.merge(services)
        ids = [service_id for service_id in (record_id(entry) for entry in entries) if service_id]
        return self.catalog.order_ids(ids)
