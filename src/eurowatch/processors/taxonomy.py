"""Fixed macro-topic taxonomy and the prompts built around it."""

from typing import Optional

UNKNOWN = "Unknown"
PROCEDURAL = "Procedural & Parliamentary business"
COUNTRY_SPECIFIC = "Country-Specific Situations"

TAXONOMY = (
    # Procedural and institutional
    PROCEDURAL,
    "Votes & explanations of vote",
    "Question time & parliamentary questions",
    "Commission & Council statements",
    "Institutional affairs & governance",
    "Elections, treaties & constitutional affairs",
    "Petitions & citizens' initiatives",
    # Legislative
    "Legislative procedure & interinstitutional negotiations",
    "Better regulation & implementation of EU law",
    # Policy domains
    "EU budget & MFF",
    "Economy & industrial policy",
    "Single market, competition & consumer protection",
    "Trade & globalization",
    "Taxation & anti-money laundering",
    "Monetary & financial stability",
    "Digital policy & data protection",
    "Cybersecurity & hybrid threats",
    "Media, information & disinformation",
    "Energy & energy security",
    "Climate, environment & biodiversity",
    "Agriculture & fisheries",
    "Food safety & animal welfare",
    "Oceans & maritime affairs",
    "Transport & mobility",
    "Regional policy & cohesion",
    "Housing & urban policy",
    "Health",
    "Public health emergencies & pandemics",
    "Research, innovation & space",
    "Education, culture & sport",
    "Social policy & employment",
    "Children & youth",
    "Gender equality & non-discrimination",
    # Rights and justice
    "Rule of law & fundamental rights",
    "Human rights & democracy worldwide",
    "Urgency resolutions on human rights breaches",
    "Justice, security & policing",
    "Terrorism & radicalisation",
    "Migration & asylum",
    # External relations
    "Security & defence",
    "Enlargement & neighbourhood policy",
    "Development & humanitarian aid",
    "Foreign policy: Europe & Eastern Neighbourhood",
    "Foreign policy: Middle East & North Africa",
    "Foreign policy: Sub-Saharan Africa",
    "Foreign policy: Americas",
    "Foreign policy: Asia-Pacific",
    "Multilateralism & international organisations",
    COUNTRY_SPECIFIC,
    UNKNOWN,
)

TAXONOMY_SET = frozenset(TAXONOMY)

FOCUS_PREFIX = "Focus:"


def build_system_prompt(taxonomy: tuple = TAXONOMY) -> str:
    """Build the system prompt enumerating the taxonomy and the decision rules."""
    labels = "\n".join(f"- {label}" for label in taxonomy)
    return "\n".join(
        [
            "You classify European Parliament plenary items into exactly ONE category "
            "from a fixed list.",
            "",
            "Categories:",
            labels,
            "",
            "Decision rules, in order of precedence:",
            f"1. Procedural items (agenda, order of business, votes, resumption or closure "
            f"of the sitting) are '{PROCEDURAL}' or the matching procedural category.",
            "2. Items about the functioning of the EU institutions themselves are "
            "institutional categories.",
            f"3. Debates on the situation in one named country or region are "
            f"'{COUNTRY_SPECIFIC}' unless a foreign-policy category names that region "
            "more precisely.",
            "4. Otherwise choose the policy domain that is the primary subject.",
            "5. Between two fitting categories, choose the more specific one.",
            "6. Never use the speaker's identity, nationality or political group as a cue; "
            "judge the content only.",
            f"7. If nothing fits, answer '{UNKNOWN}'.",
            "",
            "Output format:",
            "Line 1: the category name copied verbatim from the list, nothing else.",
            f"Line 2 (optional): '{FOCUS_PREFIX} <country, entity or programme>' when the "
            "item has a narrow subject.",
            "No other text.",
        ]
    )


def format_speech_input(
    body: str,
    speaker: Optional[str] = None,
    group: Optional[str] = None,
    language: Optional[str] = None,
) -> str:
    """Labeled envelope for one speech."""
    return "\n".join(
        [
            f"Speaker: {speaker or 'Unknown'}",
            f"Political Group: {group or 'Unknown'}",
            f"Language: {language or 'Unknown'}",
            "Speech:",
            "```",
            body,
            "```",
        ]
    )


def format_topic_input(title: str) -> str:
    """Labeled envelope for one agenda topic title."""
    return "\n".join(["Agenda topic:", "```", title.strip(), "```"])


def parse_label(content: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    """Split a model answer into its label line and optional focus.

    Returns:
        ``(label, focus)``; label is None when the first line is not a
        taxonomy entry
    """
    lines = [line.strip() for line in (content or "").strip().splitlines() if line.strip()]
    if not lines:
        return None, None
    label = lines[0].strip("`'\"")
    if label not in TAXONOMY_SET:
        return None, None
    focus = None
    for line in lines[1:]:
        if line.lower().startswith(FOCUS_PREFIX.lower()):
            focus = line[len(FOCUS_PREFIX):].strip() or None
            break
    return label, focus
