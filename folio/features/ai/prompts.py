"""Prompt construction for outlines, chapter generation and span edits."""

from typing import List, Optional, Tuple

from folio.models.project import Chapter, Project

PRIOR_CHAPTERS = 3
PRIOR_EXCERPT_CHARS = 500

EXPAND_INSTRUCTIONS = {
    "detail": "Add more specific details, sensory descriptions, and nuance",
    "examples": "Include concrete examples, anecdotes, or case studies",
    "dialogue": "Expand with realistic dialogue and character interactions",
    "description": "Enhance with vivid descriptions and imagery",
}


def prior_chapter_context(project: Project, chapter: Chapter) -> str:
    """Excerpts of the last few non-empty chapters before `chapter`."""
    earlier = [c for c in project.chapters if c.order < chapter.order and c.content]
    return "\n\n".join(
        f"Chapter {c.order}: {c.title}\n{c.content[:PRIOR_EXCERPT_CHARS]}..."
        for c in earlier[-PRIOR_CHAPTERS:]
    )


def outline_context(project: Project, chapter: Chapter) -> str:
    if project.outline is None:
        return ""
    entry = project.outline.entry_for(chapter.order)
    if entry is None:
        return ""
    return (
        "\n\nChapter Outline:\n"
        f"- Synopsis: {entry.synopsis}\n"
        f"- Key Points: {', '.join(entry.key_points)}\n"
        f"- Emotional Beat: {entry.emotional_beat or ''}\n"
        f"- Notes: {entry.notes or ''}"
    )


def chapter_prompts(project: Project, chapter: Chapter, request: str, extra: Optional[str] = None) -> Tuple[str, str]:
    """(system, user) prompts for writing a whole chapter."""
    system = (
        f'You are a professional writer helping to create content for an e-book titled "{project.title}" '
        f"in the {project.genre} genre. The language is {project.language}."
    )

    parts: List[str] = []
    previous = prior_chapter_context(project, chapter)
    if previous:
        parts.append(f"Previous chapters for context:\n{previous}\n\n")
    parts.append(f"Chapter Title: {chapter.title}{outline_context(project, chapter)}\n\n")
    parts.append(f"User Request: {request}")
    if extra:
        parts.append(f"\n\nAdditional Context: {extra}")
    parts.append(
        "\n\nPlease write engaging, high-quality content for this chapter that:\n"
        "1. Flows naturally from previous chapters\n"
        "2. Matches the established voice and tone\n"
        "3. Addresses the user's request\n"
        "4. Uses markdown formatting for structure (headings, lists, emphasis)\n\n"
        "Write the complete chapter content now:"
    )
    return system, "".join(parts)


def _surrounding(content: str, start: int, end: int, radius: int = 300) -> str:
    return content[max(0, start - radius):start] + content[start:end] + content[end:end + radius]


def span_edit_prompts(
    project: Project,
    content: str,
    start: int,
    end: int,
    mode: str,
    instruction: Optional[str] = None,
) -> Tuple[str, str]:
    """(system, user) prompts for rewriting or expanding content[start:end]."""
    selected = content[start:end]
    context = _surrounding(content, start, end)

    if mode == "expand":
        how = EXPAND_INSTRUCTIONS.get(instruction or "", "adding more depth and detail")
        task = f"expand the selected text by {how[0].lower() + how[1:]}"
        ask = f"Expanded version with more {instruction or 'detail'}:"
        lead = "Text to expand"
    else:
        task = "rewrite the selected text according to the user's instruction"
        ask = f"Instruction: {instruction or 'Improve clarity and flow'}\n\nRewritten text:"
        lead = "Selected text to rewrite"

    system = (
        f'You are a professional writer helping to edit content for "{project.title}" ({project.genre} genre).\n\n'
        f"Your task is to {task} while:\n"
        "1. Maintaining the author's voice and style\n"
        "2. Keeping the core message intact\n"
        "3. Ensuring smooth flow with surrounding context\n"
        "4. Using markdown formatting where appropriate\n\n"
        "Provide ONLY the new text, no explanations or meta-commentary."
    )
    user = f'Context:\n{context}\n\n{lead}:\n"{selected}"\n\n{ask}'
    return system, user


STRUCTURES = {
    "linear": "traditional linear progression with clear beginning, middle, and end",
    "story_arc": "narrative story arc with character development, rising action, climax, and resolution",
    "framework": "framework-based with systems, tactics, and actionable steps",
    "anthology": "collection of related but independent pieces or stories",
}

OUTLINE_SHAPE = """{
  "bookStructure": "%s",
  "overallArc": "Brief description of the book's overall narrative or thematic arc",
  "targetAudience": "Who this book is for",
  "keyThemes": ["theme1", "theme2", "theme3"],
  "chapters": [
    {
      "order": 1,
      "title": "Chapter title",
      "synopsis": "2-3 sentence summary of what happens in this chapter",
      "keyPoints": ["point 1", "point 2", "point 3"],
      "emotionalBeat": "The emotional tone or journey of this chapter",
      "estimatedWordCount": 3000,
      "notes": "Any special considerations for this chapter"
    }
  ],
  "pacingNotes": "Notes about pacing and flow between chapters"
}"""


def outline_prompts(project: Project, structure: str, chapter_count: int) -> Tuple[str, str]:
    """(system, user) prompts for planning the whole book as a JSON outline."""
    system = (
        "You are an expert book structure consultant who creates compelling, well-paced outlines "
        f"for {project.genre} books. You understand narrative structure, pacing, and how to keep readers engaged."
    )
    user = (
        "Create a detailed book outline for the following project:\n\n"
        f"Title: {project.title}\n"
        f"Description: {project.description or 'No description provided'}\n"
        f"Genre: {project.genre}\n"
        f"Language: {project.language}\n"
        f"Structure Type: {structure} ({STRUCTURES[structure]})\n"
        f"Target Chapter Count: {chapter_count}\n\n"
        f"Generate a JSON outline with this structure:\n\n{OUTLINE_SHAPE % structure}\n\n"
        f"Make the outline compelling, well-paced, and appropriate for the {project.genre} genre. "
        "Ensure chapters flow naturally and build upon each other. Respond with ONLY the JSON object."
    )
    return system, user
