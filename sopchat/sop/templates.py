"""
Built-in SOP templates.

These are seeded into the store on startup when missing and can never be
deleted through the SOP tools.
"""

from __future__ import annotations

from typing import Any

from .models import SOP, TERMINAL_STEP

PDF_SUMMARY: dict[str, Any] = {
    "id": "pdf-summary",
    "name": "pdf_summary",
    "displayName": "PDF Summary",
    "description": "Upload or paste text and get a structured summary with key takeaways",
    "version": "1.0.0",
    "generalInstructions": (
        "You are helping a user distill large amounts of information into concise, "
        "actionable summaries. Be thorough but concise, focusing on what matters most."
    ),
    "userDocuments": [
        {
            "id": "source_document",
            "name": "Source Document",
            "description": "The content to be summarized (paste text or upload file)",
            "type": "text",
            "required": True,
        }
    ],
    "assistantOutputFormats": [
        {
            "id": "pdf-summary",
            "name": "PDF Summary",
            "template": (
                "**Summary**\n- [2-3 sentences]\n\n"
                "**Main Topics**\n- [bullet points list of 5-7 key topics]\n\n"
                "**Key Takeaways**\n- [3-5 bullet points]"
            ),
            "requirements": [],
        }
    ],
    "steps": [
        {
            "id": "get-document",
            "stepNumber": 1,
            "assistantFacingTitle": "Get Document",
            "userFacingTitle": "Upload Document",
            "description": (
                "Ask the user to provide the document content to summarize, and explain "
                "to them what to expect during this SOP."
            ),
            "referencedDocuments": [],
            "expectedOutput": {
                "type": "text",
                "description": "A request to the user to provide the document content.",
            },
            "nextStep": "summarize-document",
        },
        {
            "id": "summarize-document",
            "stepNumber": 2,
            "assistantFacingTitle": "Summarize Document",
            "userFacingTitle": "View Summary",
            "description": "Create a summary document of what the user provided.",
            "referencedDocuments": ["source_document"],
            "expectedOutput": {
                "type": "markdown-document",
                "format": "pdf-summary",
                "description": "A document and a brief message to the user about said document.",
            },
            "nextStep": TERMINAL_STEP,
        },
    ],
}

CONTENT_PLAN: dict[str, Any] = {
    "id": "content-plan",
    "name": "content_plan",
    "displayName": "Content Plan Creator",
    "description": "Create a monthly content plan (12 or 18 videos) for a personal brand",
    "version": "1.0.0",
    "generalInstructions": (
        "You are a content strategist building an on-brand video content strategy. "
        "Balance variety with consistency, and make every recommendation align with "
        "the client's goals and their audience's preferences."
    ),
    "userDocuments": [
        {
            "id": "client_onboarding",
            "name": "Client Onboarding Doc",
            "description": "Business info, offers, target audience, brand goals",
            "type": "text",
            "required": True,
        },
        {
            "id": "comps_list",
            "name": "Comps List / 10x10",
            "description": "5-10 accounts to emulate with notes on tone, topic, delivery",
            "type": "text",
            "required": True,
        },
    ],
    "assistantOutputFormats": [
        {
            "id": "style-guide-ratio",
            "name": "Style Guide Ratio Doc",
            "template": (
                "Key Takeaways\n [summary]\n"
                "[CLIENT NAME] - [Package Size]-Video Monthly Content Ratio\n"
                " Content Style | % of Monthly Output | # of Videos | Primary Purpose | Example Topics\n"
            ),
            "requirements": [
                "Styles include: Talking Head, VO Storytelling, Tutorial/Framework, "
                "Vlog/Doc moments, Lists/Hacks, Text-on-Screen/Visual.",
            ],
        },
        {
            "id": "video-ideas-list",
            "name": "Video Ideas List",
            "template": (
                "A numbered list of 10 talking head video ideas:\n"
                "1. [Video Title] - [One-line angle/hook]\n(etc.)"
            ),
            "requirements": ["Each idea reflects client brand, comp style, and target audience."],
        },
        {
            "id": "script-format",
            "name": "Script Format",
            "template": (
                "**Key Information:**\n- Video Format: [type]\n- Subtopic: [topic name]\n"
                "- Instructions: [filming guidance]\n\n"
                "**NOTES AND B-ROLL (LEFT) | SCRIPT (RIGHT)**\n"
            ),
            "requirements": ["conversational tone", "no emojis", "no dashes in dialogue"],
        },
    ],
    "steps": [
        {
            "id": "step-1-gather-inputs",
            "stepNumber": 1,
            "assistantFacingTitle": "Gather Client Info",
            "userFacingTitle": "Share Client Info",
            "description": (
                "Ask the user for the client onboarding doc, comps list, and package size "
                "(12 or 18 videos). Explain what each will be used for."
            ),
            "expectedOutput": {"type": "text", "description": "A request for the three inputs."},
            "nextStep": "step-2-style-guide",
        },
        {
            "id": "step-2-style-guide",
            "stepNumber": 2,
            "assistantFacingTitle": "Generate Style Guide Ratio",
            "userFacingTitle": "Review Content Strategy",
            "description": (
                "Cross-reference the onboarding doc and comps list. Create a monthly content "
                "ratio, then ask the user which style they want to start with."
            ),
            "referencedDocuments": ["client_onboarding", "comps_list"],
            "expectedOutput": {"type": "markdown-document", "format": "style-guide-ratio"},
            "nextStep": "step-3-video-ideas",
        },
        {
            "id": "step-3-video-ideas",
            "stepNumber": 3,
            "assistantFacingTitle": "Generate Video Ideas",
            "userFacingTitle": "Choose Video Concept",
            "description": "Generate 10 video concept ideas in the chosen style.",
            "referencedDocuments": ["client_onboarding", "comps_list"],
            "expectedOutput": {"type": "text", "format": "video-ideas-list"},
            "nextStep": "step-4-script-ideas",
        },
        {
            "id": "step-4-script-ideas",
            "stepNumber": 4,
            "assistantFacingTitle": "Script Selected Ideas",
            "userFacingTitle": "Review Script",
            "description": "For the idea the user selects, write a full script in the 2-column format.",
            "referencedDocuments": ["client_onboarding", "comps_list"],
            "expectedOutput": {"type": "markdown-document", "format": "script-format"},
            # The user may loop back for another idea or finish
            "nextStep": ["step-3-video-ideas", TERMINAL_STEP],
        },
    ],
}

SOP_MANAGEMENT: dict[str, Any] = {
    "id": "sop-management",
    "name": "sop_management",
    "displayName": "SOP Management",
    "description": "Create, review, edit, or delete SOPs with the assistant",
    "version": "1.0.0",
    "generalInstructions": (
        "You help the user author Standard Operating Procedures. Always show the user "
        "what will change and get approval before calling create_sop, overwrite_sop or "
        "delete_sop. SOPs are passed to those tools as a complete JSON string."
    ),
    "userDocuments": [],
    "assistantOutputFormats": [],
    "steps": [
        {
            "id": "choose-action",
            "stepNumber": 1,
            "assistantFacingTitle": "Choose Action",
            "userFacingTitle": "What would you like to do?",
            "description": (
                "Ask whether the user wants to create a new SOP or review, edit or delete "
                "an existing one. List the available SOP ids."
            ),
            "expectedOutput": {"type": "conversation"},
            "nextStep": ["draft-changes"],
        },
        {
            "id": "draft-changes",
            "stepNumber": 2,
            "assistantFacingTitle": "Draft Changes",
            "userFacingTitle": "Review Draft",
            "description": (
                "Use display_sop_to_user to load an existing SOP when editing. Draft the new "
                "or modified SOP and walk the user through it."
            ),
            "expectedOutput": {"type": "structured"},
            "nextStep": ["apply-changes", "choose-action"],
        },
        {
            "id": "apply-changes",
            "stepNumber": 3,
            "assistantFacingTitle": "Apply Changes",
            "userFacingTitle": "Save",
            "description": (
                "Once the user approves, call create_sop, overwrite_sop or delete_sop. "
                "If the tool reports validation errors, fix them and try again."
            ),
            "expectedOutput": {"type": "conversation"},
            "nextStep": ["choose-action", TERMINAL_STEP],
        },
    ],
}

# Built-in SOPs; their ids are protected from deletion
PROTECTED_SOP_IDS: frozenset[str] = frozenset(
    sop["id"] for sop in (PDF_SUMMARY, CONTENT_PLAN, SOP_MANAGEMENT)
)


def get_default_sops() -> list[SOP]:
    """Return fresh model instances for every built-in SOP."""
    return [SOP.model_validate(data) for data in (PDF_SUMMARY, CONTENT_PLAN, SOP_MANAGEMENT)]
