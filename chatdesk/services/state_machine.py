"""Guided support-menu state machine.

``decide`` is a pure function of (current state, inbound input). It never
touches the store or the network; the dispatcher persists and sends what the
returned plan describes. Every state has a handler, so every input gets a
defined next state.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from chatdesk.services.replies import ButtonsReply, ReplyButton, ReplyPlan, TextReply


class ConversationState(str, Enum):
    AWAITING_MENU_CHOICE = "awaiting_menu_choice"
    AWAITING_ISSUE_DESCRIPTION = "awaiting_issue_description"
    AWAITING_PLATFORM_CHOICE = "awaiting_platform_choice"
    WAITING_FOR_AGENT = "waiting_for_agent"
    CONNECTED_WITH_AGENT = "connected_with_agent"
    ENDED = "ended"


INITIAL_STATE = ConversationState.AWAITING_MENU_CHOICE


class MenuChoice(str, Enum):
    ACCOUNT_ASSISTANCE = "account_assistance"
    SERVICES_PRICING = "services_pricing"
    SPEAK_TO_REP = "speak_to_rep"
    INVALID = "invalid"


class AgentCommand(str, Enum):
    ACCEPT = "accept"
    END = "end"
    NONE = "none"


MENU_BUTTONS = (
    ReplyButton(id=MenuChoice.ACCOUNT_ASSISTANCE.value, title="Account Assistance"),
    ReplyButton(id=MenuChoice.SERVICES_PRICING.value, title="Services & Pricing"),
    ReplyButton(id=MenuChoice.SPEAK_TO_REP.value, title="Speak to a Rep"),
)

PLATFORM_BUTTONS = (
    ReplyButton(id="platform_android", title="Android"),
    ReplyButton(id="platform_ios", title="iOS"),
    ReplyButton(id="platform_web", title="Web"),
)

MSG_MENU = (
    "👋 *Welcome!* How can we help you today? Reply with:\n"
    "1️⃣ Account Assistance\n2️⃣ Services & Pricing\n3️⃣ Speak to a Representative"
)
MSG_INVALID_SELECTION = "🚫 *Invalid Selection*: Please reply with one of the options below."
MSG_ISSUE_PROMPT = "📋 *Account Assistance*: Please describe your account issue. An agent will follow up soon."
MSG_PRICING = "💼 *Services & Pricing*: Please check our website for more details."
MSG_PLEASE_WAIT = "⏳ *Please wait*: Your request is being processed. An agent will be with you shortly."
MSG_WAIT_REMINDER = "⏳ *Please wait*: An agent will be with you shortly."
MSG_ISSUE_RECEIVED = "🔧 *Account Issue*: We have received your issue. An agent will follow up soon."
MSG_PLATFORM_PROMPT = "📱 Which platform are you using?"
MSG_CONNECTED = "🎉 *You are now connected with an agent*. How may we assist you?"
MSG_ENDED = "🔴 *Chat has ended*. Thank you for using our service. Please rate your experience."

_MENU_ALIASES = {
    "1": MenuChoice.ACCOUNT_ASSISTANCE,
    "2": MenuChoice.SERVICES_PRICING,
    "3": MenuChoice.SPEAK_TO_REP,
}


@dataclass(frozen=True)
class InboundInput:
    """What the state machine sees of one inbound message."""

    text: Optional[str] = None
    choice_id: Optional[str] = None  # interactive button/list reply id
    media_ref: Optional[str] = None

    @property
    def normalized(self) -> str:
        raw = self.choice_id if self.choice_id else self.text
        return (raw or "").strip().casefold()

    @property
    def is_empty(self) -> bool:
        return not self.normalized and not self.media_ref


@dataclass(frozen=True)
class TranscriptAddition:
    """Extra transcript entry produced by a transition, persisted with the state change."""

    sender: str
    body: str


@dataclass(frozen=True)
class TransitionPlan:
    next_state: ConversationState
    reply: Optional[ReplyPlan] = None
    transcript_additions: tuple[TranscriptAddition, ...] = field(default_factory=tuple)


def classify_menu_choice(inbound: InboundInput) -> MenuChoice:
    value = inbound.normalized
    if value in _MENU_ALIASES:
        return _MENU_ALIASES[value]
    try:
        choice = MenuChoice(value)
    except ValueError:
        return MenuChoice.INVALID
    return choice


def classify_agent_command(inbound: InboundInput) -> AgentCommand:
    value = inbound.normalized
    if value == AgentCommand.ACCEPT.value:
        return AgentCommand.ACCEPT
    if value == AgentCommand.END.value:
        return AgentCommand.END
    return AgentCommand.NONE


def menu_prompt(prefix: Optional[str] = None) -> ButtonsReply:
    body = f"{prefix}\n\n{MSG_MENU}" if prefix else MSG_MENU
    return ButtonsReply(body=body, buttons=MENU_BUTTONS)


def _on_menu_choice(inbound: InboundInput) -> TransitionPlan:
    choice = classify_menu_choice(inbound)
    if choice == MenuChoice.ACCOUNT_ASSISTANCE:
        return TransitionPlan(ConversationState.AWAITING_ISSUE_DESCRIPTION, TextReply(MSG_ISSUE_PROMPT))
    if choice == MenuChoice.SERVICES_PRICING:
        return TransitionPlan(ConversationState.AWAITING_MENU_CHOICE, TextReply(MSG_PRICING))
    if choice == MenuChoice.SPEAK_TO_REP:
        return TransitionPlan(ConversationState.WAITING_FOR_AGENT, TextReply(MSG_PLEASE_WAIT))
    # Invalid input leaves the state alone and re-shows the menu
    return TransitionPlan(ConversationState.AWAITING_MENU_CHOICE, menu_prompt(MSG_INVALID_SELECTION))


def _on_issue_description(inbound: InboundInput) -> TransitionPlan:
    if inbound.is_empty:
        return TransitionPlan(ConversationState.AWAITING_ISSUE_DESCRIPTION, TextReply(MSG_ISSUE_PROMPT))
    return TransitionPlan(ConversationState.WAITING_FOR_AGENT, TextReply(MSG_ISSUE_RECEIVED))


def _on_platform_choice(inbound: InboundInput) -> TransitionPlan:
    if inbound.is_empty:
        return TransitionPlan(
            ConversationState.AWAITING_PLATFORM_CHOICE,
            ButtonsReply(body=MSG_PLATFORM_PROMPT, buttons=PLATFORM_BUTTONS),
        )
    return TransitionPlan(ConversationState.WAITING_FOR_AGENT, TextReply(MSG_ISSUE_RECEIVED))


def _on_waiting_for_agent(inbound: InboundInput) -> TransitionPlan:
    command = classify_agent_command(inbound)
    if command == AgentCommand.ACCEPT:
        return TransitionPlan(ConversationState.CONNECTED_WITH_AGENT, TextReply(MSG_CONNECTED))
    if command == AgentCommand.END:
        return TransitionPlan(ConversationState.ENDED, TextReply(MSG_ENDED))
    return TransitionPlan(ConversationState.WAITING_FOR_AGENT, TextReply(MSG_WAIT_REMINDER))


def _on_connected(inbound: InboundInput) -> TransitionPlan:
    # A human agent owns the conversation now
    return TransitionPlan(ConversationState.CONNECTED_WITH_AGENT)


def _on_ended(inbound: InboundInput) -> TransitionPlan:
    return TransitionPlan(ConversationState.AWAITING_MENU_CHOICE, menu_prompt())


HANDLERS: dict[ConversationState, Callable[[InboundInput], TransitionPlan]] = {
    ConversationState.AWAITING_MENU_CHOICE: _on_menu_choice,
    ConversationState.AWAITING_ISSUE_DESCRIPTION: _on_issue_description,
    ConversationState.AWAITING_PLATFORM_CHOICE: _on_platform_choice,
    ConversationState.WAITING_FOR_AGENT: _on_waiting_for_agent,
    ConversationState.CONNECTED_WITH_AGENT: _on_connected,
    ConversationState.ENDED: _on_ended,
}

_missing = set(ConversationState) - set(HANDLERS)
if _missing:
    raise RuntimeError(f"No transition handler for states: {sorted(s.value for s in _missing)}")


class UnknownStateError(Exception):
    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Unknown conversation state: {value!r}")


def parse_state(value: object) -> ConversationState:
    """Read a stored state value; empty means a session that never transitioned."""
    if value is None or value == "":
        return INITIAL_STATE
    try:
        return ConversationState(value)
    except ValueError as e:
        raise UnknownStateError(value) from e


def decide(state: ConversationState, inbound: InboundInput) -> TransitionPlan:
    """Next state and reply for one inbound message."""
    return HANDLERS[ConversationState(state)](inbound)
