import json
from typing import List

from neurobridge.schemas import (
    AccessibilityPreferences,
    CandidateDetailsIn,
    ProfileCompletionOut,
    ProfileStepOut,
)

PROFILE_STEPS = [
    {
        "id": "personal",
        "title": "Personal Information",
        "description": "Basic contact details",
        "fields": ["phone", "address"],
    },
    {
        "id": "professional",
        "title": "Professional Details",
        "description": "Work experience and current role",
        "fields": ["current_position", "experience_years", "linkedin_profile", "github_profile"],
    },
    {
        "id": "education",
        "title": "Education & Skills",
        "description": "Educational background and technical skills",
        "fields": ["education", "skills"],
    },
    {
        "id": "bio",
        "title": "About You",
        "description": "Tell us about yourself and accessibility preferences",
        "fields": ["bio", "accessibility_preferences"],
    },
]


def _step_complete(step_id: str, details: CandidateDetailsIn) -> bool:
    # LinkedIn, GitHub and accessibility preferences are optional within their steps.
    if step_id == "personal":
        return bool(details.phone.strip() and details.address.strip())
    if step_id == "professional":
        return bool(details.current_position.strip()) and details.experience_years is not None
    if step_id == "education":
        return bool(details.education.strip()) and any(skill.strip() for skill in details.skills)
    if step_id == "bio":
        return bool(details.bio.strip())
    return True


def profile_completion(details: CandidateDetailsIn) -> ProfileCompletionOut:
    steps = [ProfileStepOut(**step, complete=_step_complete(step["id"], details)) for step in PROFILE_STEPS]
    completed = sum(1 for step in steps if step.complete)
    return ProfileCompletionOut(
        steps=steps,
        completed_steps=completed,
        total_steps=len(steps),
        profile_completed=completed == len(steps),
    )


def clean_skills(skills: List[str]) -> List[str]:
    cleaned = []
    for skill in skills:
        skill = skill.strip()
        if skill and skill not in cleaned:
            cleaned.append(skill)
    return cleaned


def skills_of(row) -> List[str]:
    if not row or not row.skills_json:
        return []
    return json.loads(row.skills_json)


def accessibility_of(row) -> AccessibilityPreferences:
    if not row or not row.accessibility_json:
        return AccessibilityPreferences()
    return AccessibilityPreferences(**json.loads(row.accessibility_json))


def details_in_of(row) -> CandidateDetailsIn:
    if not row:
        return CandidateDetailsIn()
    return CandidateDetailsIn(
        phone=row.phone or "",
        address=row.address or "",
        skills=skills_of(row),
        experience_years=row.experience_years,
        education=row.education or "",
        current_position=row.current_position or "",
        linkedin_profile=row.linkedin_profile or "",
        github_profile=row.github_profile or "",
        bio=row.bio or "",
    )
