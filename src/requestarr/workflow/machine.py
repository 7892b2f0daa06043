"""Request workflow state machine.

Every resumption point is looked up in an explicit ``(Stage, action)``
transition table. A transition runs while the session is leased and returns
either a ``RenderDirective`` or a ``_BackendStep``. A step's backend call
runs with the lease released, then the session is leased again to apply the
result. A session that ended in the meantime discards the result.

This module is the only place where errors become user-visible directives.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from functools import partial
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Union

from ..backends.errors import BackendRejected, BackendUnreachable, UnknownBackend
from ..backends.models import (
    MAX_CANDIDATES,
    BackendFamily,
    MediaCandidate,
    OptionValue,
    SettingKind,
    SubmitOutcome,
)
from ..backends.registry import BackendConfig, BackendRegistry
from ..core.logging_utils import log_event
from .errors import EXPIRED_MESSAGE, DuplicateSession, SessionError, SessionNotFound
from .render import (
    ACTION_CANCEL,
    ACTION_CONFIRM,
    ACTION_OPTION,
    ACTION_PAGE,
    ACTION_RETRY,
    ACTION_SELECT,
    ButtonStyle,
    Choice,
    ComponentEvent,
    ComponentKind,
    ComponentSpec,
    RenderDirective,
    ResponseMode,
)
from .session import Session, SettingPrompt, Stage
from .store import SessionStore

GENERIC_FAILURE_MESSAGE = (
    "Something went wrong while handling your request. Please try again later."
)
NO_MATCHES_MESSAGE = 'No matches found for "{query}".'
ALREADY_REQUESTED_MESSAGE = (
    "**{title}** has already been requested - nothing more to add."
)
REQUESTED_MESSAGE = "**{title}** has been requested."
CANCELLED_MESSAGE = "Request cancelled."
TIMED_OUT_MESSAGE = "Interaction timed out, please try again."
NOT_YOUR_REQUEST_MESSAGE = (
    "This request belongs to someone else. Start your own with /request."
)
BUSY_MESSAGE = "Still working on your previous choice, please wait a moment."
INVALID_CHOICE_MESSAGE = "That choice is no longer available."
NO_OPTIONS_MESSAGE = "The backend has no {setting} available."
RETRY_HINT = "Press Retry to try again."

# Discord select menus hold at most this many options.
SETTING_PAGE_SIZE = MAX_CANDIDATES

_IDENTIFIER_LABELS = {
    BackendFamily.RADARR: "TMDB",
    BackendFamily.SONARR: "TVDB",
}

CallPolicy = Callable[..., Awaitable[Any]]


@dataclass(frozen=True)
class _BackendStep:
    operation: str
    call: Callable[[], Awaitable[Any]]
    apply: Callable[[Session, Any], "Outcome"]
    on_unreachable: Callable[[Session, BackendUnreachable], "Outcome"]


Outcome = Union[RenderDirective, _BackendStep]
Transition = Callable[[Session, ComponentEvent], Outcome]


async def _call_directly(func: Callable[[], Awaitable[Any]]) -> Any:
    return await func()


def _notice(content: str, session: Optional[Session] = None) -> RenderDirective:
    return RenderDirective(
        content=content,
        mode=ResponseMode.NOTICE,
        stage=session.stage if session is not None else None,
    )


def _parse_index(values: Iterable[str], size: int) -> Optional[int]:
    items = list(values)
    if len(items) != 1:
        return None
    try:
        index = int(items[0])
    except (TypeError, ValueError):
        return None
    if 0 <= index < size:
        return index
    return None


def _filter_allowed(
    options: Iterable[OptionValue], allowed: Optional[tuple[str, ...]]
) -> list[OptionValue]:
    if allowed is None:
        return list(options)
    wanted = {value.casefold() for value in allowed}
    return [option for option in options if option.key.casefold() in wanted]


def _candidate_description(
    candidate: MediaCandidate, identifier_label: str
) -> Optional[str]:
    parts = []
    if candidate.identifier is not None:
        parts.append(f"{identifier_label} {candidate.identifier}")
    if candidate.overview:
        parts.append(candidate.overview)
    return " - ".join(parts) or None


def _cancel_button(correlation_id: str) -> ComponentSpec:
    return ComponentSpec(
        kind=ComponentKind.BUTTON,
        action=ACTION_CANCEL,
        correlation_id=correlation_id,
        label="Cancel",
        style=ButtonStyle.DANGER,
    )



def _page_button(correlation_id: str, label: str, offset: int) -> ComponentSpec:
    return ComponentSpec(
        kind=ComponentKind.BUTTON,
        action=ACTION_PAGE,
        correlation_id=correlation_id,
        label=label,
        argument=str(offset),
    )

class RequestWorkflow:
    def __init__(
        self,
        store: SessionStore,
        registry: BackendRegistry,
        *,
        public_followup: bool = True,
        call_backend: Optional[CallPolicy] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._public_followup = public_followup
        self._call_backend = call_backend or _call_directly
        self._logger = logger or logging.getLogger(__name__)
        self._transitions: dict[tuple[Stage, str], Transition] = {
            (Stage.AWAITING_SELECTION, ACTION_SELECT): self._on_select,
            (Stage.AWAITING_SELECTION, ACTION_CANCEL): self._on_cancel,
            (Stage.CONFIGURING_SETTINGS, ACTION_OPTION): self._on_option,
            (Stage.CONFIGURING_SETTINGS, ACTION_PAGE): self._on_page,
            (Stage.CONFIGURING_SETTINGS, ACTION_RETRY): self._on_retry,
            (Stage.CONFIGURING_SETTINGS, ACTION_CANCEL): self._on_cancel,
            (Stage.CONFIRMING_SUBMISSION, ACTION_CONFIRM): self._on_confirm,
            (Stage.CONFIRMING_SUBMISSION, ACTION_CANCEL): self._on_cancel,
        }

    async def start(self, correlation_id: str, query: str) -> RenderDirective:
        """Run the Searching transition for a freshly created session."""
        term = query.strip()
        try:
            async with self._store.lease(correlation_id) as session:
                session.query = term
                entry = self._entry(session)
                step = _BackendStep(
                    operation="search",
                    call=partial(entry.adapter.search, term),
                    apply=self._apply_search,
                    on_unreachable=self._search_unreachable,
                )
                outcome = self._settle(session, lambda: step)
        except SessionError as exc:
            return self.render_error(exc, mode=ResponseMode.INITIAL)
        directive = await self._run(correlation_id, outcome)
        if directive.mode is ResponseMode.EDIT:
            directive = replace(directive, mode=ResponseMode.INITIAL)
        return directive

    async def resume(self, event: ComponentEvent) -> RenderDirective:
        """Feed a component interaction to the current stage's transition."""
        try:
            async with self._store.lease(event.correlation_id) as session:
                if session.requester != event.user_id:
                    return self.render_unauthorized(session, event)
                if session.busy:
                    return _notice(BUSY_MESSAGE, session)
                transition = self._transitions.get((session.stage, event.action))
                if transition is None:
                    log_event(
                        self._logger,
                        logging.INFO,
                        "workflow.component.unexpected_action",
                        correlation_id=event.correlation_id,
                        stage=session.stage.value,
                        action=event.action,
                    )
                    return _notice(INVALID_CHOICE_MESSAGE, session)
                session.remember_token(event.interaction_token, now=self._store.now())
                outcome = self._settle(session, lambda: transition(session, event))
        except SessionError as exc:
            return self.render_error(exc)
        return await self._run(event.correlation_id, outcome)

    def render_error(
        self, exc: Exception, *, mode: ResponseMode = ResponseMode.EDIT
    ) -> RenderDirective:
        if isinstance(exc, SessionNotFound):
            return RenderDirective(EXPIRED_MESSAGE, mode=mode, stage=Stage.EXPIRED)
        if isinstance(exc, DuplicateSession):
            return _notice(exc.user_message or GENERIC_FAILURE_MESSAGE)
        if isinstance(exc, UnknownBackend):
            return RenderDirective(
                exc.user_message or GENERIC_FAILURE_MESSAGE,
                mode=mode,
                stage=Stage.FAILED,
            )
        return RenderDirective(GENERIC_FAILURE_MESSAGE, mode=mode, stage=Stage.FAILED)

    def render_unauthorized(
        self, session: Session, event: ComponentEvent
    ) -> RenderDirective:
        log_event(
            self._logger,
            logging.INFO,
            "workflow.component.unauthorized",
            correlation_id=session.correlation_id,
            user_id=event.user_id,
        )
        return _notice(NOT_YOUR_REQUEST_MESSAGE, session)

    def render_timeout(self, session: Session) -> RenderDirective:
        return RenderDirective(TIMED_OUT_MESSAGE, stage=session.stage)

    def _entry(self, session: Session) -> BackendConfig:
        return self._registry.resolve(session.media_name)

    def _settle(self, session: Session, produce: Callable[[], Outcome]) -> Outcome:
        try:
            outcome = produce()
        except Exception as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "workflow.transition.failed",
                correlation_id=session.correlation_id,
                stage=session.stage.value,
                exc=exc,
            )
            outcome = self._fail(session, GENERIC_FAILURE_MESSAGE)
        session.busy = isinstance(outcome, _BackendStep)
        if session.stage.is_terminal():
            self._store.remove(session.correlation_id)
            log_event(
                self._logger,
                logging.INFO,
                "workflow.session.finished",
                correlation_id=session.correlation_id,
                media_name=session.media_name,
                stage=session.stage.value,
            )
        return outcome

    async def _run(self, correlation_id: str, outcome: Outcome) -> RenderDirective:
        while isinstance(outcome, _BackendStep):
            step = outcome
            try:
                result = await self._call_backend(step.call)
            except BackendUnreachable as exc:
                log_event(
                    self._logger,
                    logging.WARNING,
                    "workflow.backend.unreachable",
                    correlation_id=correlation_id,
                    operation=step.operation,
                    exc=exc,
                )
                outcome = await self._apply(
                    correlation_id, lambda session: step.on_unreachable(session, exc)
                )
            except BackendRejected as exc:
                log_event(
                    self._logger,
                    logging.WARNING,
                    "workflow.backend.rejected",
                    correlation_id=correlation_id,
                    operation=step.operation,
                    status_code=exc.status_code,
                    exc=exc,
                )
                outcome = await self._apply(
                    correlation_id, lambda session: self._rejected(session, exc)
                )
            except Exception as exc:
                log_event(
                    self._logger,
                    logging.ERROR,
                    "workflow.backend.failed",
                    correlation_id=correlation_id,
                    operation=step.operation,
                    exc=exc,
                )
                outcome = await self._apply(
                    correlation_id,
                    lambda session: self._fail(session, GENERIC_FAILURE_MESSAGE),
                )
            else:
                outcome = await self._apply(
                    correlation_id, lambda session: step.apply(session, result)
                )
        return outcome

    async def _apply(
        self, correlation_id: str, produce: Callable[[Session], Outcome]
    ) -> Outcome:
        try:
            async with self._store.lease(correlation_id) as session:
                return self._settle(session, lambda: produce(session))
        except SessionError as exc:
            log_event(
                self._logger,
                logging.INFO,
                "workflow.result.discarded",
                correlation_id=correlation_id,
            )
            return self.render_error(exc)

    def _fail(self, session: Session, message: str) -> RenderDirective:
        if not session.stage.is_terminal():
            session.advance(Stage.FAILED)
        return RenderDirective(message, stage=Stage.FAILED)

    def _rejected(self, session: Session, exc: BackendRejected) -> RenderDirective:
        return self._fail(
            session, f"Request failed: {exc.user_message or exc.reason}"
        )

    # Searching

    def _apply_search(
        self, session: Session, candidates: list[MediaCandidate]
    ) -> Outcome:
        log_event(
            self._logger,
            logging.INFO,
            "workflow.search.completed",
            correlation_id=session.correlation_id,
            media_name=session.media_name,
            result_count=len(candidates),
        )
        if not candidates:
            session.advance(Stage.FAILED)
            return RenderDirective(
                NO_MATCHES_MESSAGE.format(query=session.query), stage=Stage.FAILED
            )
        session.candidates = list(candidates[:MAX_CANDIDATES])
        if len(session.candidates) == 1:
            return self._choose_candidate(session, session.candidates[0])
        session.advance(Stage.AWAITING_SELECTION)
        return self._render_selection(session)

    def _search_unreachable(
        self, session: Session, exc: BackendUnreachable
    ) -> RenderDirective:
        return self._fail(session, exc.user_message or GENERIC_FAILURE_MESSAGE)

    # AwaitingSelection

    def _on_select(self, session: Session, event: ComponentEvent) -> Outcome:
        index = _parse_index(event.values, len(session.candidates))
        if index is None:
            return _notice(INVALID_CHOICE_MESSAGE, session)
        return self._choose_candidate(session, session.candidates[index])

    def _choose_candidate(self, session: Session, candidate: MediaCandidate) -> Outcome:
        session.selected = candidate
        if candidate.already_tracked and self._entry(session).adapter.stops_early:
            session.advance(Stage.COMPLETED)
            return RenderDirective(
                ALREADY_REQUESTED_MESSAGE.format(title=candidate.display_title),
                stage=Stage.COMPLETED,
            )
        session.advance(Stage.CONFIGURING_SETTINGS)
        return self._configure(session)

    # ConfiguringSettings

    def _configure(self, session: Session) -> Outcome:
        entry = self._entry(session)
        for setting in entry.adapter.settings:
            if setting in entry.overrides or setting in session.pending_settings:
                continue
            options = session.option_cache.get(setting)
            if options is None:
                return _BackendStep(
                    operation=f"list_{setting.value}",
                    call=partial(entry.adapter.list_option_values, setting),
                    apply=partial(self._apply_options, setting),
                    on_unreachable=self._configure_unreachable,
                )
            choices = _filter_allowed(options, entry.allowed_choices.get(setting))
            if not choices:
                fallback = entry.adapter.default_value(setting, options)
                if fallback is None:
                    return self._fail(
                        session,
                        NO_OPTIONS_MESSAGE.format(setting=setting.label.lower()),
                    )
                session.pending_settings[setting] = fallback.key
                log_event(
                    self._logger,
                    logging.INFO,
                    "workflow.setting.defaulted",
                    correlation_id=session.correlation_id,
                    setting=setting.value,
                    value=fallback.key,
                )
                continue
            if len(choices) == 1:
                session.pending_settings[setting] = choices[0].key
                continue
            session.prompt = SettingPrompt(setting=setting, options=tuple(choices))
            if len(choices) > SETTING_PAGE_SIZE:
                log_event(
                    self._logger,
                    logging.INFO,
                    "workflow.setting.paged",
                    correlation_id=session.correlation_id,
                    setting=setting.value,
                    option_count=len(choices),
                    page_size=SETTING_PAGE_SIZE,
                )
            return self._render_prompt(session)
        session.prompt = None
        session.advance(Stage.CONFIRMING_SUBMISSION)
        return self._render_confirmation(session)

    def _apply_options(
        self, setting: SettingKind, session: Session, options: list[OptionValue]
    ) -> Outcome:
        session.option_cache[setting] = list(options)
        return self._configure(session)

    def _configure_unreachable(
        self, session: Session, exc: BackendUnreachable
    ) -> RenderDirective:
        retry = ComponentSpec(
            kind=ComponentKind.BUTTON,
            action=ACTION_RETRY,
            correlation_id=session.correlation_id,
            label="Retry",
            style=ButtonStyle.PRIMARY,
        )
        content = f"{exc.user_message or GENERIC_FAILURE_MESSAGE}\n{RETRY_HINT}"
        return RenderDirective(
            content,
            components=(retry, _cancel_button(session.correlation_id)),
            stage=session.stage,
        )

    def _on_option(self, session: Session, event: ComponentEvent) -> Outcome:
        prompt = session.prompt
        if prompt is None or event.argument != prompt.setting.value:
            return _notice(INVALID_CHOICE_MESSAGE, session)
        index = _parse_index(event.values, len(prompt.options))
        if index is None:
            return _notice(INVALID_CHOICE_MESSAGE, session)
        session.pending_settings[prompt.setting] = prompt.options[index].key
        session.prompt = None
        return self._configure(session)

    def _on_page(self, session: Session, event: ComponentEvent) -> Outcome:
        prompt = session.prompt
        try:
            offset = int(event.argument or "")
        except ValueError:
            offset = -1
        if (
            prompt is None
            or not 0 <= offset < len(prompt.options)
            or offset % SETTING_PAGE_SIZE
        ):
            return _notice(INVALID_CHOICE_MESSAGE, session)
        session.prompt = replace(prompt, offset=offset)
        return self._render_prompt(session)

    def _on_retry(self, session: Session, event: ComponentEvent) -> Outcome:
        return self._configure(session)

    # ConfirmingSubmission

    def _on_confirm(self, session: Session, event: ComponentEvent) -> Outcome:
        candidate = session.selected
        if candidate is None:
            raise RuntimeError("confirmation reached without a selected candidate")
        entry = self._entry(session)
        resolved = self._resolved_settings(session, entry)
        profile = self._cached_option(
            session,
            SettingKind.QUALITY_PROFILE,
            resolved.get(SettingKind.QUALITY_PROFILE),
        )
        log_event(
            self._logger,
            logging.INFO,
            "workflow.submit.started",
            correlation_id=session.correlation_id,
            media_name=session.media_name,
            title=candidate.display_title,
            settings={setting.value: value for setting, value in resolved.items()},
        )
        return _BackendStep(
            operation="submit",
            call=partial(
                entry.adapter.submit,
                candidate,
                resolved,
                quality_profile_id=profile.value if profile is not None else None,
            ),
            apply=self._apply_submit,
            on_unreachable=self._submit_unreachable,
        )

    def _apply_submit(self, session: Session, outcome: SubmitOutcome) -> Outcome:
        entry = self._entry(session)
        title = session.selected.display_title if session.selected else session.query
        session.advance(Stage.COMPLETED)
        if outcome is SubmitOutcome.ALREADY_REQUESTED:
            return RenderDirective(
                ALREADY_REQUESTED_MESSAGE.format(title=title), stage=Stage.COMPLETED
            )
        announcement = None
        if self._public_followup:
            announcement = (
                f"New request: **{title}** ({entry.family.noun}) "
                f"requested by <@{session.requester}>"
            )
        return RenderDirective(
            REQUESTED_MESSAGE.format(title=title),
            stage=Stage.COMPLETED,
            announcement=announcement,
        )

    def _submit_unreachable(
        self, session: Session, exc: BackendUnreachable
    ) -> RenderDirective:
        return self._render_confirmation(
            session, note=exc.user_message or GENERIC_FAILURE_MESSAGE
        )

    def _on_cancel(self, session: Session, event: ComponentEvent) -> Outcome:
        session.advance(Stage.CANCELLED)
        return RenderDirective(CANCELLED_MESSAGE, stage=Stage.CANCELLED)

    # Rendering

    def _resolved_settings(
        self, session: Session, entry: BackendConfig
    ) -> dict[SettingKind, str]:
        resolved: dict[SettingKind, str] = {}
        for setting in entry.adapter.settings:
            value = entry.overrides.get(setting, session.pending_settings.get(setting))
            if value is not None:
                resolved[setting] = value
        return resolved

    def _cached_option(
        self, session: Session, setting: SettingKind, key: Optional[str]
    ) -> Optional[OptionValue]:
        if key is None:
            return None
        for option in session.option_cache.get(setting, ()):
            if option.key.casefold() == key.casefold():
                return option
        return None

    def _describe(
        self, session: Session, entry: BackendConfig, setting: SettingKind, key: str
    ) -> str:
        option = self._cached_option(session, setting, key)
        if option is not None:
            return option.label
        labels: Mapping[str, str] = entry.adapter.static_values.get(setting, {})
        if key in labels:
            return labels[key]
        if setting is SettingKind.SEASON_FOLDER:
            return "Yes" if key == "true" else "No"
        return key

    def _summary_lines(self, session: Session) -> list[str]:
        entry = self._entry(session)
        lines = []
        if session.selected is not None:
            lines.append(f"**{session.selected.display_title}**")
        for setting, key in self._resolved_settings(session, entry).items():
            value = self._describe(session, entry, setting, key)
            lines.append(f"{setting.label}: {value}")
        return lines

    def _render_selection(self, session: Session) -> RenderDirective:
        entry = self._entry(session)
        identifier_label = _IDENTIFIER_LABELS[entry.family]
        choices = tuple(
            Choice(
                label=candidate.display_title,
                value=str(index),
                description=_candidate_description(candidate, identifier_label),
            )
            for index, candidate in enumerate(session.candidates)
        )
        select = ComponentSpec(
            kind=ComponentKind.SELECT,
            action=ACTION_SELECT,
            correlation_id=session.correlation_id,
            label=f"Select a {entry.family.noun}",
            choices=choices,
        )
        content = (
            f'Found {len(session.candidates)} results for "{session.query}". '
            "Select one:"
        )
        return RenderDirective(
            content,
            components=(select, _cancel_button(session.correlation_id)),
            stage=session.stage,
        )

    def _render_prompt(self, session: Session) -> RenderDirective:
        prompt = session.prompt
        if prompt is None:
            raise RuntimeError("setting prompt rendered without a pending setting")
        label = prompt.setting.label.lower()
        page = prompt.options[prompt.offset : prompt.offset + SETTING_PAGE_SIZE]
        select = ComponentSpec(
            kind=ComponentKind.SELECT,
            action=ACTION_OPTION,
            correlation_id=session.correlation_id,
            label=f"Select {label}",
            argument=prompt.setting.value,
            choices=tuple(
                Choice(
                    label=option.label,
                    value=str(index),
                    description=option.description,
                )
                for index, option in enumerate(page, start=prompt.offset)
            ),
        )
        cid = session.correlation_id
        components = [select]
        if prompt.offset > 0:
            previous_offset = prompt.offset - SETTING_PAGE_SIZE
            components.append(_page_button(cid, "Previous", previous_offset))
        next_offset = prompt.offset + SETTING_PAGE_SIZE
        if next_offset < len(prompt.options):
            components.append(_page_button(cid, "More", next_offset))
        components.append(_cancel_button(cid))
        lines = self._summary_lines(session)
        lines.append("")
        if len(prompt.options) > SETTING_PAGE_SIZE:
            lines.append(
                f"Choose the {label} ({prompt.offset + 1}-"
                f"{prompt.offset + len(page)} of {len(prompt.options)}):"
            )
        else:
            lines.append(f"Choose the {label}:")
        return RenderDirective(
            "\n".join(lines), components=tuple(components), stage=session.stage
        )

    def _render_confirmation(
        self, session: Session, *, note: Optional[str] = None
    ) -> RenderDirective:
        entry = self._entry(session)
        lines = [note, ""] if note else []
        lines.extend(self._summary_lines(session))
        lines.append("")
        lines.append(f"Request this {entry.family.noun}?")
        confirm = ComponentSpec(
            kind=ComponentKind.BUTTON,
            action=ACTION_CONFIRM,
            correlation_id=session.correlation_id,
            label="Request",
            style=ButtonStyle.SUCCESS,
        )
        return RenderDirective(
            "\n".join(lines),
            components=(confirm, _cancel_button(session.correlation_id)),
            stage=session.stage,
        )
