"""
Built-in starter templates an author can clone into a new draft.

Section/field ids are assigned at clone time; order follows list position.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

_SIGNATURE = {"label": "Caregiver Signature", "type": "SIGNATURE", "required": True, "config": None}

STARTER_TEMPLATES: List[Dict[str, Any]] = [
    {
        "id": "basic-visit-notes",
        "name": "Basic Visit Notes",
        "description": "A simple form for documenting daily visit activities",
        "sections": [
            {
                "title": "Visit Summary",
                "description": "General overview of the visit",
                "fields": [
                    {
                        "label": "What activities did you do with the client?",
                        "type": "TEXT_LONG",
                        "required": True,
                        "config": {"maxLength": 2000, "placeholder": "Describe the activities..."},
                    },
                    {
                        "label": "How was the client's mood today?",
                        "type": "SINGLE_CHOICE",
                        "required": True,
                        "config": {"options": ["Happy", "Neutral", "Sad", "Anxious", "Confused"]},
                    },
                    {
                        "label": "Any concerns or observations?",
                        "type": "TEXT_LONG",
                        "required": False,
                        "config": {"maxLength": 1000, "placeholder": "Note any concerns..."},
                    },
                ],
            },
            {
                "title": "Client Status",
                "description": "Physical and health observations",
                "fields": [
                    {"label": "Did the client eat/drink well?", "type": "YES_NO", "required": True, "config": None},
                    {
                        "label": "Overall client condition rating",
                        "type": "RATING_SCALE",
                        "required": True,
                        "config": {
                            "min": 1,
                            "max": 5,
                            "labels": {"1": "Poor", "2": "Fair", "3": "Good", "4": "Very Good", "5": "Excellent"},
                        },
                    },
                ],
            },
            {
                "title": "Verification",
                "description": None,
                "fields": [
                    {"label": "Photo of completed tasks (optional)", "type": "PHOTO", "required": False, "config": None},
                    _SIGNATURE,
                ],
            },
        ],
    },
    {
        "id": "medication-check",
        "name": "Medication Check",
        "description": "Form for documenting medication administration",
        "sections": [
            {
                "title": "Medication Administration",
                "description": None,
                "fields": [
                    {"label": "Were all scheduled medications given?", "type": "YES_NO", "required": True, "config": None},
                    {
                        "label": "Which medications were administered?",
                        "type": "MULTIPLE_CHOICE",
                        "required": True,
                        "config": {
                            "options": [
                                "Morning medications",
                                "Afternoon medications",
                                "Evening medications",
                                "PRN medications",
                                "Supplements",
                            ]
                        },
                    },
                    {"label": "Time medications were given", "type": "TIME", "required": True, "config": None},
                    {
                        "label": "Were there any issues or refusals?",
                        "type": "TEXT_LONG",
                        "required": False,
                        "config": {"maxLength": 1000, "placeholder": "Describe any issues..."},
                    },
                ],
            },
            {
                "title": "Client Response",
                "description": None,
                "fields": [
                    {
                        "label": "How did the client respond to medication?",
                        "type": "SINGLE_CHOICE",
                        "required": True,
                        "config": {"options": ["No issues", "Minor discomfort", "Side effects noticed", "Refused medication"]},
                    },
                    {"label": "Additional notes", "type": "TEXT_LONG", "required": False, "config": {"maxLength": 500}},
                    _SIGNATURE,
                ],
            },
        ],
    },
    {
        "id": "personal-care",
        "name": "Personal Care",
        "description": "Form for documenting personal care assistance",
        "sections": [
            {
                "title": "Care Tasks Completed",
                "description": "Select all tasks completed during this visit",
                "fields": [
                    {
                        "label": "Personal hygiene tasks",
                        "type": "MULTIPLE_CHOICE",
                        "required": True,
                        "config": {
                            "options": [
                                "Bathing/showering",
                                "Hair washing",
                                "Oral care",
                                "Shaving",
                                "Nail care",
                                "Dressing assistance",
                            ]
                        },
                    },
                    {
                        "label": "Mobility assistance",
                        "type": "MULTIPLE_CHOICE",
                        "required": False,
                        "config": {
                            "options": [
                                "Transfer assistance",
                                "Walking support",
                                "Wheelchair assistance",
                                "Bed repositioning",
                                "Exercise support",
                            ]
                        },
                    },
                ],
            },
            {
                "title": "Observations",
                "description": None,
                "fields": [
                    {
                        "label": "Skin condition observations",
                        "type": "SINGLE_CHOICE",
                        "required": True,
                        "config": {"options": ["Normal", "Minor concerns", "Needs attention", "Reported to supervisor"]},
                    },
                    {
                        "label": "Mobility level",
                        "type": "SINGLE_CHOICE",
                        "required": True,
                        "config": {"options": ["Independent", "Minimal assistance", "Moderate assistance", "Full assistance"]},
                    },
                    {"label": "Notes on care provided", "type": "TEXT_LONG", "required": False, "config": {"maxLength": 1000}},
                    _SIGNATURE,
                ],
            },
        ],
    },
]


def get_starter(starter_id: str) -> Optional[Dict[str, Any]]:
    for s in STARTER_TEMPLATES:
        if s["id"] == starter_id:
            return s
    return None


def starter_summaries() -> List[Dict[str, Any]]:
    return [
        {
            "id": s["id"],
            "name": s["name"],
            "description": s["description"],
            "sections_count": len(s["sections"]),
            "fields_count": sum(len(sec["fields"]) for sec in s["sections"]),
        }
        for s in STARTER_TEMPLATES
    ]
