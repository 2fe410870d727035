"""
Text fragments for retrieval.

Each searchable record is rendered as one labelled line of text ("Mood entry:",
"Therapy task:", ...). The embedding indexer embeds these fragments and the
keyword fallback matches against them, so both retrieval paths produce the
same previews.
"""
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence

import schemas

PREVIEW_LENGTH = 200

MOOD_ENTRY = "Mood entry:"
MOOD_PATTERN = "Mood pattern:"
SESSION_CONTEXT = "Session context:"
THERAPY_TASK = "Therapy task:"
PROGRESS_ENTRY = "Progress entry:"
JOURNAL_ENTRY = "Journal entry:"
CLINICAL_NOTE = "Clinical note:"
CHAT_MESSAGE = "Chat message:"
COPING_TOOL = "Coping tool:"
RECOMMENDATION = "Recommendation:"

LABELS = [
    MOOD_ENTRY, MOOD_PATTERN, SESSION_CONTEXT, THERAPY_TASK, PROGRESS_ENTRY,
    JOURNAL_ENTRY, CLINICAL_NOTE, CHAT_MESSAGE, COPING_TOOL, RECOMMENDATION,
]


class Fragment(NamedTuple):
    table_name: str
    record_id: str
    content: str
    user_id: Optional[str] = None


def make_preview(content: str, length: int = PREVIEW_LENGTH) -> str:
    if len(content) <= length:
        return content
    return content[:length] + "..."


def split_label(text: str):
    """Return (label, body) for a fragment or preview; label is None if unrecognised."""
    for label in LABELS:
        if text.startswith(label):
            body = text[len(label):].strip()
            if body.endswith("..."):
                body = body[:-3].rstrip()
            return label, body
    return None, text.strip()


def _date(value) -> str:
    return value.strftime("%Y-%m-%d") if value else "undated"


# ============ PER-TABLE RENDERERS ============

def mood_entry_fragments(context: schemas.UserContext) -> List[Fragment]:
    fragments = []
    for entry in context.mood_entries:
        text = f"{MOOD_ENTRY} {_date(entry.created_at)} mood {entry.mood_score}/10"
        if entry.trigger:
            text += f", trigger: {entry.trigger}"
        if entry.notes:
            text += f", notes: {entry.notes}"
        fragments.append(Fragment("mood_entries", entry.id, text))
    return fragments


def monitoring_fragments(context: schemas.UserContext) -> List[Fragment]:
    fragments = []
    for entry in context.monitoring_entries:
        parts = []
        for label, value in (
            ("mood", entry.mood_rating),
            ("energy", entry.energy_level),
            ("sleep quality", entry.sleep_quality),
            ("stress", entry.stress_level),
            ("anxiety", entry.anxiety_level),
        ):
            if value is not None:
                parts.append(f"{label} {value}/10")
        if entry.sleep_hours is not None:
            parts.append(f"slept {entry.sleep_hours:g}h")
        if entry.exercise_minutes:
            parts.append(f"exercise {entry.exercise_minutes} min")
        if entry.social_interaction:
            parts.append("socialised")
        text = f"{MOOD_PATTERN} {_date(entry.entry_date)} " + ", ".join(parts)
        if entry.journal_entry:
            text += f". {entry.journal_entry}"
        if entry.gratitude_note:
            text += f". Grateful for: {entry.gratitude_note}"
        fragments.append(Fragment("monitoring_entries", entry.id, text.strip()))
    return fragments


def journal_fragments(context: schemas.UserContext) -> List[Fragment]:
    fragments = []
    for entry in context.journal_entries:
        text = f"{JOURNAL_ENTRY} {_date(entry.created_at)} {entry.content}"
        if entry.tags:
            text += f" (tags: {', '.join(entry.tags)})"
        fragments.append(Fragment("journal_entries", entry.id, text))
    return fragments


def session_fragments(context: schemas.UserContext) -> List[Fragment]:
    fragments = []
    for session in context.therapy_sessions:
        text = f"{SESSION_CONTEXT} {_date(session.session_date)} {session.session_type or 'therapy'} session"
        if session.therapist_name:
            text += f" with {session.therapist_name}"
        if session.goals:
            text += f", goals: {', '.join(session.goals)}"
        if session.techniques_used:
            text += f", techniques: {', '.join(session.techniques_used)}"
        if session.mood_before is not None and session.mood_after is not None:
            text += f", mood {session.mood_before} -> {session.mood_after}"
        if session.notes:
            text += f". {session.notes}"
        fragments.append(Fragment("therapy_sessions", session.id, text))
    return fragments


def homework_fragments(context: schemas.UserContext) -> List[Fragment]:
    fragments = []
    for hw in context.therapy_homework:
        if hw.is_archived:
            continue
        text = f"{THERAPY_TASK} {hw.title} [{hw.status or 'assigned'}]"
        if hw.due_date:
            text += f" due {_date(hw.due_date)}"
        if hw.completion_percentage is not None:
            text += f", {hw.completion_percentage}% complete"
        if hw.description:
            text += f". {hw.description}"
        fragments.append(Fragment("therapy_homework", hw.id, text))
    return fragments


def task_fragments(context: schemas.UserContext) -> List[Fragment]:
    fragments = []
    for task in context.tasks:
        if task.is_archived:
            continue
        text = f"{THERAPY_TASK} {task.title} [{task.status or 'pending'}]"
        if task.due_at:
            text += f" due {_date(task.due_at)}"
        if task.description:
            text += f". {task.description}"
        fragments.append(Fragment("tasks", task.id, text))
    return fragments


def assessment_result_fragments(context: schemas.UserContext) -> List[Fragment]:
    fragments = []
    for result in context.assessment_results:
        text = f"{PROGRESS_ENTRY} {_date(result.completed_at)} {result.instrument or 'assessment'} score"
        if result.score is not None:
            text += f" {result.score:g}"
        if result.severity_level:
            text += f" ({result.severity_level})"
        if result.interpretation:
            text += f". {result.interpretation}"
        fragments.append(Fragment("assessment_results", result.id, text))
    return fragments


def micro_win_fragments(context: schemas.UserContext) -> List[Fragment]:
    return [
        Fragment("micro_wins", win.id, f"{PROGRESS_ENTRY} {_date(win.detected_at)} {win.win_text}")
        for win in context.micro_wins
    ]


def clinical_note_fragments(context: schemas.UserContext) -> List[Fragment]:
    return [
        Fragment("notes", note.id, f"{CLINICAL_NOTE} {_date(note.created_at)} {note.content}")
        for note in context.clinical_notes
    ]


def chat_message_fragments(context: schemas.UserContext) -> List[Fragment]:
    return [
        Fragment("chat_messages", message.id, f"{CHAT_MESSAGE} {message.sender or 'user'}: {message.content}")
        for message in context.chat_messages
        if message.content
    ]


def recommendation_fragments(context: schemas.UserContext) -> List[Fragment]:
    fragments = []
    for insight in context.ai_insights:
        if not insight.actionable_recommendations:
            continue
        text = f"{RECOMMENDATION} {insight.title}: " + "; ".join(insight.actionable_recommendations)
        fragments.append(Fragment("ai_insights", insight.id, text))
    return fragments


def coping_tool_fragments(tools: Sequence[schemas.CopingTool]) -> List[Fragment]:
    fragments = []
    for tool in tools:
        details = ", ".join(part for part in (tool.category, tool.duration) if part)
        text = f"{COPING_TOOL} {tool.title}"
        if details:
            text += f" ({details})"
        if tool.description:
            text += f" - {tool.description}"
        if tool.steps:
            text += " Steps: " + " ".join(f"{i}. {step}" for i, step in enumerate(tool.steps, 1))
        fragments.append(Fragment("coping_tools", tool.id, text))
    return fragments


CONTEXT_RENDERERS: Dict[str, Callable[[schemas.UserContext], List[Fragment]]] = {
    "mood_entries": mood_entry_fragments,
    "monitoring_entries": monitoring_fragments,
    "journal_entries": journal_fragments,
    "therapy_sessions": session_fragments,
    "therapy_homework": homework_fragments,
    "tasks": task_fragments,
    "assessment_results": assessment_result_fragments,
    "micro_wins": micro_win_fragments,
    "notes": clinical_note_fragments,
    "chat_messages": chat_message_fragments,
    "ai_insights": recommendation_fragments,
}


def build_fragments(context: schemas.UserContext,
                    user_id: Optional[str] = None,
                    coping_tools: Sequence[schemas.CopingTool] = (),
                    tables: Optional[Iterable[str]] = None) -> List[Fragment]:
    """
    Render searchable fragments for a user.

    Args:
        context: UserContext snapshot
        user_id: Owner stamped on each fragment
        coping_tools: Coping tools visible to the user
        tables: Restrict to these tables (all when None), in the given order

    Returns:
        Fragments grouped by table, newest records first within a table
    """
    selected = list(tables) if tables is not None else list(CONTEXT_RENDERERS) + ["coping_tools"]

    fragments: List[Fragment] = []
    for table in selected:
        if table == "coping_tools":
            for tool, fragment in zip(coping_tools, coping_tool_fragments(coping_tools)):
                # Default tools are shared and have no owner
                fragments.append(fragment._replace(user_id=None if tool.is_default else user_id))
            continue
        renderer = CONTEXT_RENDERERS.get(table)
        if renderer is None:
            continue
        fragments.extend(fragment._replace(user_id=user_id) for fragment in renderer(context))
    return fragments
