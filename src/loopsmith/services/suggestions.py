def suggest_improvements(content: str, previous_score: float | None = None) -> list[str]:
    """Cheap heuristic suggestions that do not need the engine."""
    suggestions: list[str] = []
    if previous_score is not None and previous_score < 5:
        suggestions.append("Revisit the basic structure and content of the document")
    if len(content) < 500:
        suggestions.append("Add more detailed explanations")
    if "```" not in content:
        suggestions.append("Add code examples")
    if "##" not in content:
        suggestions.append("Clarify the section structure with headings")
    return suggestions
