"""
Response assembler: turns ranked retrieval results into an intent-specific
reply. It is deterministic and total, so it doubles as the fallback text
whenever the generative model is unavailable.
"""
from typing import Dict, List, Optional, Sequence

import schemas
from schemas import QueryIntent
from services import fragments
from services.fragments import split_label

GUIDANCE_TEMPLATE = (
    'I understand you\'re asking about "{query}". Let me search for relevant information in '
    'your mental health data. Try asking about "my mood entries," "my therapy sessions," '
    '"my progress," or available "breathing techniques" and "coping strategies".'
)

EXAMPLE_QUERIES = [
    ('"What mood entries do I have?"', "for personal mood tracking"),
    ('"Show me my therapy sessions"', "for therapy tasks and progress"),
    ('"What breathing techniques are available?"', "for coping tools"),
    ('"How am I progressing?"', "for progress tracking"),
]

MAX_TOOLS_SHOWN = 3


def describe_intent(results: Sequence[schemas.RetrievalResult]) -> QueryIntent:
    """First non-general intent in the result set, else general_search."""
    for result in results:
        if result.query_intent != QueryIntent.general_search:
            return result.query_intent
    return QueryIntent.general_search


def _group_evidence(results: Sequence[schemas.RetrievalResult]) -> Dict[Optional[str], List[str]]:
    grouped: Dict[Optional[str], List[str]] = {}
    for result in results:
        label, body = split_label(result.preview)
        grouped.setdefault(label, []).append(body)
    return grouped


def _numbered(title: str, items: Sequence[str]) -> str:
    lines = [f"**{title}:**"]
    lines.extend(f"{index}. {item}" for index, item in enumerate(items, 1))
    return "\n".join(lines) + "\n\n"


def _other_records(grouped: Dict[Optional[str], List[str]], used: Sequence[Optional[str]]) -> str:
    leftovers = [item for label, items in grouped.items() if label not in used for item in items]
    return _numbered("Other Related Records", leftovers) if leftovers else ""


def _render_mood(grouped: Dict[Optional[str], List[str]]) -> str:
    entries = grouped.get(fragments.MOOD_ENTRY, [])
    patterns = grouped.get(fragments.MOOD_PATTERN, [])

    response = f"**Your Mood Entries**\n\nI found {len(entries) + len(patterns)} mood-related entries in your data:\n\n"
    if entries:
        response += _numbered("Recent Mood Tracking", entries)
    if patterns:
        response += _numbered("Emotional Patterns Detected", patterns)
    response += _other_records(grouped, [fragments.MOOD_ENTRY, fragments.MOOD_PATTERN])

    response += "**Insights:** "
    if entries:
        response += ("Your recent mood entries show consistent tracking. This is great for "
                     "understanding your emotional patterns and progress!")
    elif patterns:
        response += ("Your monitoring entries show some emotional patterns, but I don't see recent "
                     "mood check-ins alongside them. Adding a quick mood rating now and then would "
                     "round out the picture.")
    else:
        response += ("I don't see many recorded mood entries yet. Consider tracking your mood "
                     "regularly to help monitor your mental health journey.")
    return response


def _render_sessions(grouped: Dict[Optional[str], List[str]]) -> str:
    tasks = grouped.get(fragments.THERAPY_TASK, [])
    sessions = grouped.get(fragments.SESSION_CONTEXT, [])

    response = f"**Your Therapy Sessions & Tasks**\n\nI found {len(tasks) + len(sessions)} therapy-related items:\n\n"
    if tasks:
        response += _numbered("Assigned Therapy Tasks", tasks)
    if sessions:
        response += _numbered("Session Notes", sessions)
    response += _other_records(grouped, [fragments.THERAPY_TASK, fragments.SESSION_CONTEXT])

    response += "**Next Steps:** "
    if tasks:
        response += ("You have active therapy tasks assigned. Focus on completing them to make progress "
                     "in your mental health journey. Track your completion and mood changes as you work "
                     "through each task.")
    else:
        response += ("No specific therapy tasks found. This might be a good time to discuss with your "
                     "therapist about setting up structured homework assignments.")
    return response


def _render_progress(grouped: Dict[Optional[str], List[str]]) -> str:
    entries = grouped.get(fragments.PROGRESS_ENTRY, []) + grouped.get(fragments.MOOD_ENTRY, [])

    response = "**Your Progress Summary**\n\n"
    if entries:
        response += _numbered("Recent Progress", entries)
    response += _other_records(grouped, [fragments.PROGRESS_ENTRY, fragments.MOOD_ENTRY])

    response += "**Progress Insights:** "
    if entries:
        response += ("Your tracking shows engagement with your therapy goals. Keep documenting your "
                     "progress to maintain momentum and identify patterns in your healing journey.")
    else:
        response += ("There isn't much recorded progress yet. Logging moods, homework and small wins "
                     "will make your progress easier to see over time.")
    return response


def _render_tools(grouped: Dict[Optional[str], List[str]]) -> str:
    tools = grouped.get(fragments.COPING_TOOL, [])
    recommendations = grouped.get(fragments.RECOMMENDATION, [])

    response = "**Available Coping Tools & Techniques**\n\n"
    if not tools and not recommendations:
        return response + (
            "I didn't find specific tools matching your query, but I can help you explore breathing "
            "techniques, mindfulness exercises, grounding methods, or cognitive strategies. What type "
            "of coping tool are you most interested in?"
        )

    response += f"I found {len(tools)} relevant coping tools for you:\n\n"
    if tools:
        response += _numbered("Recommended Techniques", tools[:MAX_TOOLS_SHOWN])
    if recommendations:
        response += _numbered("Expert Recommendations", recommendations)
    response += _other_records(grouped, [fragments.COPING_TOOL, fragments.RECOMMENDATION])

    response += ("**How to use:** Try these techniques during moments of stress or anxiety. Start with "
                 "5-10 minutes daily and track how they affect your mood. The more you practice, the "
                 "more effective they become.")
    return response


def _render_general(query_text: str, results: Sequence[schemas.RetrievalResult]) -> str:
    response = (f'Based on your query "{query_text}", I searched across your mental health data and '
                f"found some relevant information:\n\n")
    evidence = [f"{split_label(result.preview)[1]} ({result.table_name})" for result in results]
    response += _numbered("Related Records", evidence)

    response += "For more specific results, try asking about:\n\n"
    response += "\n".join(f"- {query} - {purpose}" for query, purpose in EXAMPLE_QUERIES)
    response += "\n\nI'm here to help you navigate your mental health journey with personalized insights!"
    return response


def render(query_text: str, results: Sequence[schemas.RetrievalResult]) -> str:
    """
    Render an intent-specific reply from ranked results.

    Args:
        query_text: The user's question
        results: Ranked RetrievalResults (may be empty)

    Returns:
        Non-empty reply text
    """
    if not results:
        return GUIDANCE_TEMPLATE.format(query=query_text)

    intent = describe_intent(results)
    grouped = _group_evidence(results)

    if intent == QueryIntent.personal_mood_data:
        return _render_mood(grouped)
    if intent == QueryIntent.personal_session_data:
        return _render_sessions(grouped)
    if intent == QueryIntent.personal_progress_data:
        return _render_progress(grouped)
    if intent == QueryIntent.coping_tools_info:
        return _render_tools(grouped)
    return _render_general(query_text, results)


def build_grounding_context(results: Sequence[schemas.RetrievalResult], search_method: str) -> str:
    """
    Format results as the evidence block handed to the generative model.

    Args:
        results: Ranked RetrievalResults
        search_method: "embedding" or "keyword"

    Returns:
        Grounding text
    """
    if not results:
        return "No relevant information found in the database for this query.\n"

    text = f"Relevant information from the database (via {search_method} search):\n\n"
    for index, result in enumerate(results, 1):
        text += (f'{index}. From table "{result.table_name}" (ID: {result.id}, '
                 f"similarity: {result.score * 100:.1f}%, intent: {result.query_intent.value}):\n")
        text += f"{result.preview}\n"
        text += f"Query intent: {result.query_intent.value}\n"
        text += f"Relevance: {result.relevance_reason}\n\n"
    return text
