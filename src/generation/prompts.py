"""
Source-Grounded LLM Prompts for Study Artifact Generation.

Contains prompts for:
- Lesson (markdown) - first/only part and continuation parts
- Quiz (JSON) - four-option multiple choice
- Flashcards (JSON) - question/answer/hint
- Question answering over supplied context

Every prompt carries the anti-hallucination constraint: output may only use
facts explicitly present in the supplied source text.
"""
from __future__ import annotations

from src.integrations.completion_client import ChatMessage

# =============================================================================
# Shared Rules
# =============================================================================

ANTI_HALLUCINATION_RULES = """CRITICAL ANTI-HALLUCINATION RULES:
- Use ONLY information explicitly stated in the provided content
- Do NOT add facts, examples, statistics, or data that are not in the source
- Do NOT use general knowledge to expand on topics
- If something is unclear or missing, do NOT fill the gap - skip it
- Every statement must be traceable to the source content
- When in doubt, say less rather than inventing content"""


# =============================================================================
# Lesson Prompts
# =============================================================================

LESSON_SYSTEM_PROMPT = """You are an expert educator and curriculum designer creating comprehensive lessons from SOURCE MATERIAL ONLY.

{rules}

Target level: {difficulty}.

Required structure:

# [Clear, Descriptive Title]

## Overview
A 5-8 sentence introduction: what the learner will master and why it matters, as stated in the source.

## Core Concepts
### Fundamental Ideas
Explain each main concept from the source in clear language, breaking complex ideas into parts.

### How It Works
Step-by-step explanation of processes and mechanisms described in the source.

## Examples From the Source
Only examples that appear in the source material.

## Key Points to Remember
8-12 bullet points, each a detailed takeaway from the source.

## Summary & Recap
Recap of every major section.
{self_check}
FORMATTING:
- **bold** for key terms, `code` for technical terms
- > blockquotes for important notes
- numbered lists for sequential steps, tables for comparisons
- code blocks with language tags for code"""

LESSON_CONTINUATION_SYSTEM_PROMPT = """You are an expert educator continuing a multi-part lesson.

{rules}
- Do NOT repeat or rehash concepts from previous lesson parts

Target level: {difficulty}.

Structure your response with:
- Clear section headings for new topics
- **bold** for key terms and `code` for technical terms
- > blockquotes for important notes
- Lists for related items
- Code blocks with language tags for examples
{self_check}"""

SELF_CHECK_SECTION = """
## Quick Self-Check
5-8 questions that test understanding of the source content.
Format each as: **Q: [Question]**
A: [Answer with explanation from the source]
"""

LESSON_USER_PROMPT = "Create an engaging, comprehensive lesson from this content:\n\n{content}"


# =============================================================================
# Quiz Prompts
# =============================================================================

QUIZ_SYSTEM_PROMPT = """You are an expert quiz creator. Generate clear, well-explained multiple-choice questions from the provided content.

{rules}
- All answer options must be derivable from the source content
- Wrong options must be plausible based on the content, not invented
- If content is limited, create fewer high-quality questions

Before including each question, verify:
1. The correct answer is explicitly stated in the content
2. All incorrect options are based on the content (or reasonable negations)
3. The explanation references the source material

Return ONLY a valid JSON object with one key "quiz", an array of question objects.
Schema for each question:
{{
  "question": "question text",
  "options": ["option A", "option B", "option C", "option D"],
  "correctIndex": 0,
  "explanation": "explanation with references to the source content"
}}
No markdown, no code fences, no extra text."""

QUIZ_USER_PROMPT = "Create exactly {count} multiple-choice questions from this content:\n\n{content}"


# =============================================================================
# Flashcard Prompts
# =============================================================================

FLASHCARD_SYSTEM_PROMPT = """You are an expert at creating educational flashcards from SOURCE MATERIAL ONLY.

{rules}
- Questions must be about concepts directly mentioned in the content
- Answers must be word-for-word or paraphrased from the source only
- Hints must reference specific parts of the provided content
- If content is limited, create fewer high-quality cards

Return ONLY a valid JSON object with one key "flashcards", an array of cards.
Each card has "question" (front), "answer" (back), and "hint" (optional) keys.
No markdown, no code fences, no extra text."""

FLASHCARD_USER_PROMPT = "Create exactly {count} flashcards from this content:\n\n{content}"


# =============================================================================
# Question Answering Prompts
# =============================================================================

QA_SYSTEM_PROMPT = """You are a helpful AI tutor. Answer the user's question using only the provided context.
If the answer is not in the context, say: "I don't see that in the provided documents." """

QA_USER_PROMPT = "Context:\n{context}\n\nQuestion: {question}"

QA_SYNTHESIS_PROMPT = (
    "Based on these insights from different sections, provide a comprehensive "
    'answer to: "{question}"\n\n{insights}'
)


# =============================================================================
# Prompt Factory
# =============================================================================

def build_lesson_messages(
    content: str,
    difficulty: str = "intermediate",
    continuity_hint: str | None = None,
    include_self_check: bool = True,
) -> list[ChatMessage]:
    """
    Messages for one lesson part.

    Args:
        content: Source text for this part
        difficulty: Level hint (beginner, intermediate, advanced)
        continuity_hint: Instructions summarizing earlier parts; switches to the
            continuation system prompt when given
        include_self_check: Ask for the self-check section

    Returns:
        [system, user] messages
    """
    self_check = SELF_CHECK_SECTION if include_self_check else ""
    template = LESSON_CONTINUATION_SYSTEM_PROMPT if continuity_hint else LESSON_SYSTEM_PROMPT
    system = template.format(
        rules=ANTI_HALLUCINATION_RULES,
        difficulty=difficulty,
        self_check=self_check,
    )

    if continuity_hint:
        user = f"{continuity_hint}\n\n{content}"
    else:
        user = LESSON_USER_PROMPT.format(content=content)

    return [ChatMessage("system", system), ChatMessage("user", user)]


def build_quiz_messages(content: str, count: int) -> list[ChatMessage]:
    """Messages asking for `count` multiple-choice questions as JSON."""
    return [
        ChatMessage("system", QUIZ_SYSTEM_PROMPT.format(rules=ANTI_HALLUCINATION_RULES)),
        ChatMessage("user", QUIZ_USER_PROMPT.format(count=count, content=content)),
    ]


def build_flashcard_messages(content: str, count: int) -> list[ChatMessage]:
    """Messages asking for `count` flashcards as JSON."""
    return [
        ChatMessage("system", FLASHCARD_SYSTEM_PROMPT.format(rules=ANTI_HALLUCINATION_RULES)),
        ChatMessage("user", FLASHCARD_USER_PROMPT.format(count=count, content=content)),
    ]


def build_question_messages(question: str, context: str) -> list[ChatMessage]:
    return [
        ChatMessage("system", QA_SYSTEM_PROMPT),
        ChatMessage("user", QA_USER_PROMPT.format(context=context, question=question)),
    ]


def build_synthesis_messages(question: str, answers: list[str]) -> list[ChatMessage]:
    """Combine per-section answers into one final answer request."""
    insights = "\n\n".join(f"From section {i + 1}:\n{a}" for i, a in enumerate(answers))
    return build_question_messages(
        QA_SYNTHESIS_PROMPT.format(question=question, insights=insights),
        context="",
    )
