"""
Rule-based blog outlines for the next-action list.

One template per prompt category; the same (category, prompt text) always
yields the same outline, so reports are reproducible without a model call.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class OutlineSection:
    heading: str
    bullets: list[str]

    def to_dict(self) -> dict:
        return {"heading": self.heading, "bullets": list(self.bullets)}


@dataclass(frozen=True)
class Outline:
    artifact_type: str
    steps: list[str]
    sections: list[OutlineSection] = field(default_factory=list)


LLM_READY_CHECKLIST = [
    "Clear H1/H2 in task phrasing",
    "TL;DR answer at the top",
    "Pros/cons & decision criteria where applicable",
    "Citations to authoritative sources",
    "Comparison table if evaluating options",
    "JSON-LD/Schema for canonical facts",
    "'When not to use' notes (LLMs value nuance)",
]


def _common_top(h1: str) -> list[str]:
    return [
        f"H1: {h1}",
        "Hook: 2-3 lines framing the pain or decision.",
        "TL;DR: one-paragraph answer a busy reader can act on.",
        "Reader fit: who this is for / when to use / when not to use.",
    ]


def _sections(*pairs: tuple[str, list[str]]) -> list[OutlineSection]:
    return [OutlineSection(heading, bullets) for heading, bullets in pairs]


def _solution_comparing(text: str) -> Outline:
    # Decision blog: X vs Y vs Us
    h1 = "Comparison Guide" if len(text) > 80 else text
    return Outline(
        artifact_type="blog_post",
        steps=_common_top(h1) + [
            "Evaluation criteria: cost, time-to-value, scalability, security/compliance, integrations, support.",
            "Quick verdict: 3-5 bullets with who-should-choose-what.",
            "Side-by-side comparison (table embedded in blog).",
            "Deep dives per option: strengths, tradeoffs, pitfalls.",
            "Decision checklist: must-haves vs nice-to-haves.",
            "Total cost & ROI considerations (simple example).",
            "Implementation notes & risks (and how to mitigate).",
            "FAQ: 5-7 buyer questions answered succinctly.",
            "CTA: next steps (trial, demo, migration playbook).",
            "Citations to standards and credible sources; add JSON-LD for key facts.",
        ],
        sections=_sections(
            ("Quick Verdict", ["Who should choose A/B/Us", "Top 3 tradeoffs to know"]),
            ("Decision Criteria", ["Cost", "Time-to-value", "Scalability", "Security/Compliance", "Integrations", "Support"]),
            ("Side-by-Side", ["Comparison table inline", "Pros/Cons, 'Best for', 'Not ideal for'"]),
            ("ROI & Risk", ["Simple ROI example", "Key risks & mitigations"]),
            ("FAQ", ["Budget fit?", "Migration effort?", "Vendor lock-in?", "Security posture?"]),
            ("Citations & Schema", ["External standards", "JSON-LD for facts"]),
        ),
    )


def _identified_problem(text: str) -> Outline:
    # Troubleshooting blog: how to fix {problem}
    h1 = text if text.startswith(("How ", "Fix ")) else f"How to solve: {text}"
    return Outline(
        artifact_type="blog_post",
        steps=_common_top(h1) + [
            "Symptoms & diagnostics: what to check and how to confirm.",
            "Root causes: likely causes ranked by likelihood/impact.",
            "Remediation steps: numbered sequence with validation gates.",
            "Edge cases & rollback plan.",
            "Monitoring & prevention controls.",
            "Team ownership & escalation path.",
            "FAQ: practical snags and real-world nuances.",
            "Citations & JSON-LD for canonical facts.",
            "CTA: tool/scripts, template download, or contact path.",
        ],
        sections=_sections(
            ("Symptoms & Diagnostics", ["Observable signs", "Checks", "Expected results"]),
            ("Root Causes", ["Cause 1 -> Fix", "Cause 2 -> Fix", "Prerequisites & caveats"]),
            ("Step-by-Step Fix", ["Numbered steps", "Validation gates"]),
            ("Prevention", ["Monitors", "Runbooks", "SLAs & ownership"]),
            ("FAQ", ["What if X fails?", "How to roll back safely?"]),
        ),
    )


def _brainstorming(text: str) -> Outline:
    # Ideation blog: how-to / frameworks
    h1 = text if text.startswith("How ") else f"How to: {text}"
    return Outline(
        artifact_type="blog_post",
        steps=_common_top(h1) + [
            "Approach patterns: 3-5 frameworks with pros/cons.",
            "Choose a recommended path (and why).",
            "Detailed walkthrough: numbered, copy-pastable steps.",
            "Examples & templates (inputs/outputs).",
            "Pitfalls, constraints, and guardrails.",
            "Advanced tips & extensions.",
            "FAQ: edge questions a practitioner might ask.",
            "Citations & JSON-LD where appropriate.",
            "CTA: template pack, checklist, or starter repo.",
        ],
        sections=_sections(
            ("Approach Patterns", ["Pattern A", "Pattern B", "Pattern C"]),
            ("Recommended Path", ["Why this works", "Prerequisites"]),
            ("Step-by-Step", ["Actionable steps 1..N"]),
            ("Examples & Templates", ["Sample inputs/outputs", "Download links"]),
            ("Pitfalls & Constraints", ["Common mistakes", "When not to use"]),
            ("FAQ", ["Best practice for X?", "What about Y scale?"]),
        ),
    )


def _info_seeking(text: str) -> Outline:
    # Definition + guidance blog
    h1 = text if text.lower().startswith("what is") else f"What is {text}?"
    return Outline(
        artifact_type="blog_post",
        steps=_common_top(h1) + [
            "Definition: precise, unambiguous 2-3 sentences.",
            "Why it matters: concrete outcomes and stakes.",
            "Key concepts & relationships (short sections).",
            "Standards, formats, or equations if relevant.",
            "Best practices & common mistakes.",
            "Mini-FAQ (5-7 practical Q&As).",
            "Citations; add JSON-LD (Thing/DefinedTerm) for facts.",
            "CTA: deeper guide, glossary hub, or tutorial path.",
        ],
        sections=_sections(
            ("Definition", ["Short, precise explanation", "Context in the stack"]),
            ("Why It Matters", ["Outcomes", "Risks of ignoring"]),
            ("Key Concepts", ["Concept A", "Concept B", "How they relate"]),
            ("Standards & Formats", ["Standards A/B", "Interoperability notes"]),
            ("Best Practices & Mistakes", ["Do's", "Don'ts"]),
            ("FAQ", ["When to use?", "How to evaluate?"]),
        ),
    )


_TEMPLATES = {
    "solution_comparing": _solution_comparing,
    "identified_problem": _identified_problem,
    "brainstorming": _brainstorming,
    "info_seeking": _info_seeking,
}


def outline_for(category: str, prompt_text: str) -> Outline:
    """Category-specific outline; unknown categories use the info-seeking template."""
    return _TEMPLATES.get(category, _info_seeking)(prompt_text or "")
