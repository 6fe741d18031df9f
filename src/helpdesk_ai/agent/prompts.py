"""System prompts and customer-facing canned messages for both agent tiers."""

from __future__ import annotations

from langchain_core.messages import BaseMessage
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder

from helpdesk_ai.playbooks.engine import format_instruction
from helpdesk_ai.playbooks.models import PlaybookStep
from helpdesk_ai.types import AgentContext, ChatMessage, EscalationLevel

DOCUMENTATION_HEADERS = ("## Relevant Documentation", "## Technical Documentation")
PLAYBOOK_HEADER = "## Current Playbook"

TURN_PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", "{system_prompt}"),
        MessagesPlaceholder(variable_name="chat_history", optional=True),
        ("human", "{input}"),
    ]
)

_TIER1_PROMPT = """
You are TechSupport AI, a Level 1 (L1) support agent. You help customers with technical issues using a structured approach.

## Your Capabilities
- Search knowledge base documentation
- Guide customers through troubleshooting steps
- Execute playbook steps for common issues
- Escalate to L2 (advanced AI) when needed
- Escalate to human agents for complex cases

## Constraints
- NEVER perform destructive actions (delete accounts, modify billing, etc.)
- NEVER share sensitive information (passwords, API keys, etc.)
- Always be polite and professional
- Keep responses concise but helpful
- If unsure, escalate rather than guess
""".strip()

_TIER1_GUIDELINES = """
## Response Guidelines
1. First, try to understand the customer's issue
2. Search documentation if you need more information
3. Guide the customer through troubleshooting steps
4. If following a playbook, stick to the current step
5. Escalate if:
   - The issue is beyond L1 scope
   - Multiple attempts have failed
   - Customer requests human assistance
   - Security/compliance concerns arise
""".strip()

_TIER2_PROMPT = """
You are TechSupport AI Level 2 (L2), an advanced support agent with expanded troubleshooting capabilities. This case has been escalated from L1 due to complexity.

## Your Enhanced Capabilities
- Deep technical documentation search
- Error log and message analysis
- Complex diagnostic step generation
- VisionScreen for visual troubleshooting (screen sharing)
- Detailed root cause analysis
- Escalation to human specialists when needed

## Constraints
- NEVER perform destructive actions
- NEVER share sensitive information
- Always explain technical concepts clearly
- If you need to see the customer's screen, use VisionScreen
- Escalate to human if issue persists after 3+ attempts
""".strip()

_TIER2_GUIDELINES = """
## L2 Response Guidelines
1. Review what L1 has already tried
2. Ask targeted diagnostic questions
3. Analyze any error messages thoroughly
4. Consider using VisionScreen for visual issues
5. Provide step-by-step technical guidance
6. Document root cause when found
7. Escalate to human only if necessary

When suggesting VisionScreen, explain:
- Why you need to see their screen
- What they should have ready to show
- That the session is secure and temporary
""".strip()


def _case_context(context: AgentContext, *, support_level: str | None = None) -> str:
    lines = [
        "## Current Case Context",
        f"- Product: {context.product}",
        f"- Category: {context.category}",
        f"- Severity: {context.severity}",
        f"- Language: {context.language}",
    ]
    if support_level:
        lines.append(f"- Support Level: {support_level}")
    if context.customer_name:
        lines.append(f"- Customer: {context.customer_name}")
    return "\n".join(lines)


def build_tier1_prompt(
    context: AgentContext,
    rag_context: str,
    *,
    playbook_name: str | None = None,
    step: PlaybookStep | None = None,
    variables: dict[str, str] | None = None,
) -> str:
    sections = [_TIER1_PROMPT, _case_context(context)]

    if rag_context:
        sections.append(f"{DOCUMENTATION_HEADERS[0]}\n{rag_context}")

    if step is not None:
        if variables is None:
            variables = context.playbook_state.variables if context.playbook_state else {}
        block = [
            f"{PLAYBOOK_HEADER}: {playbook_name or 'Unnamed playbook'}",
            f"**Current Step ({step.id})**: {step.title}",
            f"**Instructions**: {format_instruction(step.instruction, variables)}",
        ]
        if step.expected_outcome:
            block.append(f"**Expected Outcome**: {step.expected_outcome}")
        block.append("")
        block.append(
            "Follow this playbook step. If the customer confirms success, mark the step as "
            "successful. If they report failure, follow the failure path or escalate if needed."
        )
        sections.append("\n".join(block))

    sections.append(_TIER1_GUIDELINES)
    sections.append(f"Respond in {context.language}.")
    return "\n\n".join(sections)


def build_tier2_prompt(context: AgentContext, rag_context: str) -> str:
    history = context.case_history
    case_context = _case_context(context, support_level="L2 (Advanced)")
    if context.visual_session_active:
        case_context += "\n- VisionScreen: ACTIVE (you can see their screen)"
    sections = [_TIER2_PROMPT, case_context]

    if history.steps_attempted or history.failed_steps:
        attempted = "\n".join(
            f"{number}. {step}" for number, step in enumerate(history.steps_attempted, start=1)
        ) or "None"
        failed = "\n".join(f"- {step}" for step in history.failed_steps) or "None"
        sections.append(
            "## Previous Troubleshooting (L1)\n"
            f"Steps attempted:\n{attempted}\n\n"
            f"Failed steps:\n{failed}"
        )
    if history.l1_summary:
        sections.append(f"## L1 Summary\n{history.l1_summary}")
    if history.last_l1_response:
        sections.append(f"## Last L1 Response\n{history.last_l1_response}")

    if rag_context:
        sections.append(f"{DOCUMENTATION_HEADERS[1]}\n{rag_context}")

    sections.append(_TIER2_GUIDELINES)
    sections.append(f"Respond in {context.language}. Be thorough but clear.")
    return "\n\n".join(sections)


def build_turn_messages(
    system_prompt: str, history: list[ChatMessage], user_message: str
) -> list[BaseMessage]:
    return TURN_PROMPT.format_messages(
        system_prompt=system_prompt,
        chat_history=[(message.role, message.content) for message in history],
        input=user_message,
    )


CRITICAL_HANDOFF_MESSAGES: dict[str, str] = {
    "L1": (
        "I understand this is a critical matter. I'm connecting you with a human support "
        "specialist right away who can assist you better."
    ),
    "L2": (
        "I understand this is a critical issue that requires immediate human attention. "
        "I'm connecting you with a senior support specialist right now."
    ),
}

_GREETINGS: dict[str, str] = {
    "en": "Hello{name}! I'm your AI support assistant. I'm here to help you with your technical issue. Could you please describe what problem you're experiencing?",
    "fr": "Bonjour{name} ! Je suis votre assistant de support IA. Je suis là pour vous aider avec votre problème technique. Pourriez-vous décrire le problème que vous rencontrez ?",
    "de": "Hallo{name}! Ich bin Ihr KI-Support-Assistent. Ich bin hier, um Ihnen bei Ihrem technischen Problem zu helfen. Könnten Sie bitte beschreiben, welches Problem Sie haben?",
    "it": "Ciao{name}! Sono il tuo assistente di supporto AI. Sono qui per aiutarti con il tuo problema tecnico. Potresti descrivere quale problema stai riscontrando?",
    "zh": "您好{name}！我是您的AI支持助手。我在这里帮助您解决技术问题。请问您遇到了什么问题？",
    "fa": "سلام{name}! من دستیار پشتیبانی هوش مصنوعی شما هستم. من اینجا هستم تا در مورد مشکل فنی شما کمک کنم. لطفاً مشکلی که با آن مواجه هستید را توضیح دهید؟",
}

_ESCALATION_MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "L2": "I'm transferring you to our advanced support system for more specialized assistance. Please hold on while I prepare the handoff.",
        "L3": "I'm connecting you with a human support specialist who can better assist you with this matter. They will be with you shortly.",
    },
    "fr": {
        "L2": "Je vous transfère vers notre système de support avancé pour une assistance plus spécialisée. Veuillez patienter pendant que je prépare le transfert.",
        "L3": "Je vous mets en contact avec un spécialiste du support humain qui pourra mieux vous aider. Il sera avec vous sous peu.",
    },
    "de": {
        "L2": "Ich verbinde Sie mit unserem erweiterten Support-System für speziellere Hilfe. Bitte warten Sie, während ich die Übergabe vorbereite.",
        "L3": "Ich verbinde Sie mit einem menschlichen Support-Spezialisten, der Ihnen bei dieser Angelegenheit besser helfen kann. Er wird in Kürze bei Ihnen sein.",
    },
    "it": {
        "L2": "Ti sto trasferendo al nostro sistema di supporto avanzato per un'assistenza più specializzata. Attendi mentre preparo il passaggio.",
        "L3": "Ti sto collegando con uno specialista del supporto umano che può assisterti meglio in questa questione. Sarà con te a breve.",
    },
    "zh": {
        "L2": "我正在将您转接到我们的高级支持系统，以获得更专业的帮助。请稍等，我正在准备转接。",
        "L3": "我正在为您联系人工支持专家，他们可以更好地帮助您处理这个问题。他们很快就会与您联系。",
    },
    "fa": {
        "L2": "من شما را به سیستم پشتیبانی پیشرفته ما منتقل می‌کنم برای کمک تخصصی‌تر. لطفاً صبر کنید تا انتقال را آماده کنم.",
        "L3": "من شما را به یک متخصص پشتیبانی انسانی متصل می‌کنم که می‌تواند بهتر به شما در این مورد کمک کند. آنها به زودی با شما خواهند بود.",
    },
}


def generate_greeting(language: str, customer_name: str | None = None) -> str:
    """Opening message for a new case; unknown languages fall back to English."""

    template = _GREETINGS.get(language, _GREETINGS["en"])
    return template.format(name=f" {customer_name}" if customer_name else "")


def generate_escalation_message(level: EscalationLevel, language: str) -> str:
    return _ESCALATION_MESSAGES.get(language, _ESCALATION_MESSAGES["en"])[level]
