import html
import re
from datetime import datetime
from typing import List, Optional

from neurobridge.reports import capitalize_first
from neurobridge.schemas import (
    AchievementOut,
    CertificationOut,
    PersonalInfoOut,
    QuizResultOut,
    ResumeData,
)

RESUME_STYLES = """
    body { font-family: Arial, sans-serif; margin: 40px; line-height: 1.6; }
    .header { text-align: center; margin-bottom: 30px; }
    .section { margin-bottom: 25px; }
    .section h2 { color: #2563eb; border-bottom: 2px solid #2563eb; padding-bottom: 5px; }
    .achievement { margin: 10px 0; padding: 10px; background-color: #f8fafc; border-left: 4px solid #10b981; }
    .certification { margin: 8px 0; padding: 8px; background-color: #fef3c7; border-radius: 4px; }
    .skills { display: flex; flex-wrap: wrap; gap: 8px; }
    .skill { background-color: #dbeafe; padding: 4px 8px; border-radius: 4px; font-size: 14px; }
"""


class ResumeIncompleteError(ValueError):
    pass


def _badge(percentage: int) -> str:
    if percentage >= 80:
        return "gold"
    if percentage >= 70:
        return "silver"
    return "bronze"


def build_resume(
    profile,
    details,
    skills: List[str],
    quiz_results: List[QuizResultOut],
    generated_at: Optional[datetime] = None,
) -> ResumeData:
    """Assemble resume content from the candidate's profile and quiz history.

    Every result becomes a certification; results at 70% or better also count
    as achievements and add their domain to the skill list.
    """
    if details is None:
        raise ResumeIncompleteError("Please complete your profile before generating a resume.")

    skills = list(skills)
    achievements = []
    certifications = []
    for result in quiz_results:
        completed = result.completed_at.isoformat()
        summary = f"Scored {result.percentage}% ({result.score}/{result.total_questions}) in {result.domain_id}"
        if result.percentage >= 80:
            achievements.append(
                AchievementOut(
                    title=f"Excellent Performance in {result.quiz_type}",
                    description=summary,
                    level="excellent",
                    date=completed,
                )
            )
        elif result.percentage >= 70:
            achievements.append(
                AchievementOut(
                    title=f"Strong Performance in {result.quiz_type}",
                    description=summary,
                    level="good",
                    date=completed,
                )
            )

        certifications.append(
            CertificationOut(
                name=f"{capitalize_first(result.quiz_type)} Assessment - {result.domain_id}",
                score=f"{result.percentage}%",
                date=completed,
                badge=_badge(result.percentage),
            )
        )

        if result.percentage >= 70:
            skill_name = capitalize_first(result.domain_id)
            if skill_name not in skills:
                skills.append(skill_name)

    first_name = profile.first_name if profile else ""
    last_name = profile.last_name if profile else ""
    return ResumeData(
        personal_info=PersonalInfoOut(
            name=f"{first_name or ''} {last_name or ''}".strip(),
            email=(profile.email if profile else "") or "",
            phone=details.phone or "",
            address=details.address or "",
            current_position=details.current_position or "",
            experience=details.experience_years,
            education=details.education or "",
            bio=details.bio or "",
            linkedin=details.linkedin_profile or "",
            github=details.github_profile or "",
        ),
        skills=skills,
        achievements=achievements,
        certifications=certifications,
        quiz_results=quiz_results,
        generated_at=(generated_at or datetime.utcnow()).isoformat(),
    )


def resume_filename(resume: ResumeData, ascii_only: bool = False) -> str:
    slug = re.sub(r"\s+", "-", resume.personal_info.name.strip()).lower()
    if ascii_only:
        slug = re.sub(r"[^a-z0-9-]", "", slug).strip("-")
    return f"resume-{slug or 'candidate'}.html"


def render_resume_html(resume: ResumeData) -> str:
    esc = html.escape
    info = resume.personal_info
    contact = " | ".join(esc(part) for part in (info.email, info.phone, info.address) if part)
    links = " | ".join(esc(part) for part in (info.linkedin, info.github) if part)

    header = [f"<h1>{esc(info.name or 'Candidate')}</h1>"]
    if info.current_position:
        header.append(f"<p><strong>{esc(info.current_position)}</strong></p>")
    if contact:
        header.append(f"<p>{contact}</p>")
    if links:
        header.append(f"<p>{links}</p>")

    sections = []
    if info.bio:
        sections.append(f'<div class="section"><h2>Professional Summary</h2><p>{esc(info.bio)}</p></div>')
    if info.experience is not None or info.education:
        details = []
        if info.experience is not None:
            details.append(f"<p><strong>Experience:</strong> {info.experience} years</p>")
        if info.education:
            details.append(f"<p><strong>Education:</strong> {esc(info.education)}</p>")
        sections.append(f'<div class="section"><h2>Background</h2>{"".join(details)}</div>')
    if resume.skills:
        skills = "".join(f'<span class="skill">{esc(skill)}</span>' for skill in resume.skills)
        sections.append(f'<div class="section"><h2>Skills</h2><div class="skills">{skills}</div></div>')
    if resume.achievements:
        items = "".join(
            f'<div class="achievement"><h3>{esc(a.title)}</h3><p>{esc(a.description)}</p></div>'
            for a in resume.achievements
        )
        sections.append(f'<div class="section"><h2>Achievements</h2>{items}</div>')
    if resume.certifications:
        items = "".join(
            f'<div class="certification"><strong>{esc(c.name)}</strong> - {esc(c.score)} ({c.badge})</div>'
            for c in resume.certifications
        )
        sections.append(f'<div class="section"><h2>Skill Assessments</h2>{items}</div>')

    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n'
        "<head>\n"
        '<meta charset="utf-8">\n'
        f"<title>{esc(info.name or 'Candidate')} - Resume</title>\n"
        f"<style>{RESUME_STYLES}</style>\n"
        "</head>\n"
        "<body>\n"
        f'<div class="header">{"".join(header)}</div>\n'
        f"{''.join(sections)}\n"
        f"<footer><small>Generated {esc(resume.generated_at)}</small></footer>\n"
        "</body>\n"
        "</html>\n"
    )
