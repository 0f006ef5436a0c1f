"""Classifier prompts for candidate metadata and transcripts."""

from __future__ import annotations

from core import CandidateItem


CLASSIFY_SYSTEM = (
    "You review grappling (BJJ) videos for an instructional library. "
    "Answer with a single JSON object and nothing else."
)

TRANSCRIPT_SYSTEM = """Analyze this BJJ instructional video transcript for teaching quality and technical depth.

HIGH QUALITY INDICATORS (85-100):
- Specific technical details (hand positions, angles, pressure points, grips)
- Step-by-step breakdown with clear sequence
- Common mistakes addressed ("don't do X because...")
- Conditional scenarios ("if opponent does X, then Y...")
- Proper terminology (underhook, overhook, frames, etc.)
- Troubleshooting tips, setup and finishing details

MEDIUM QUALITY (50-84):
- Some technical details but lacking depth
- Basic step-by-step but not comprehensive
- Missing troubleshooting or alternatives

LOW QUALITY (0-49):
- Vague instructions ("just do it like this")
- Mostly filler words
- No specific technical details
- Music/sound effects without instruction

Return JSON with:
{
  "quality_score": 0-100,
  "reason": "brief explanation of score"
}"""


def format_duration(seconds: int) -> str:
    seconds = max(0, int(seconds or 0))
    return f"{seconds // 60}:{seconds % 60:02d}"


def build_classification_prompt(
    candidate: CandidateItem,
    target_entity: str,
    duration: int,
    *,
    excerpt_chars: int = 500,
) -> str:
    description = str(candidate.description or "")[: max(0, int(excerpt_chars))]
    return f"""Analyze this BJJ video for instructional quality. Target instructor: {target_entity}

VIDEO INFO:
Title: {candidate.title}
Channel: {candidate.channel_title}
Description: {description}
Duration: {format_duration(duration)}

ANALYZE:
1. Is this an INSTRUCTIONAL video teaching technique (not competition footage, podcast, interview)?
2. Is {target_entity} the instructor in this video (teaching, not just mentioned)?
3. What specific technique is being taught?
4. What type? (submission, sweep, pass, escape, guard, takedown, position, defense, transition, drill)
5. What position category? (guard, mount, side control, back, standing, half guard, turtle, etc.)
6. Gi, No-Gi, or Both?
7. Quality score 0-100 based on: clear instruction, technique depth, production quality, educational value

RESPOND IN JSON:
{{
  "isInstructional": boolean,
  "isTargetInstructor": boolean,
  "technique": "specific technique name" or null,
  "techniqueType": "type" or null,
  "positionCategory": "position" or null,
  "giOrNogi": "gi" | "nogi" | "both" or null,
  "qualityScore": 0-100,
  "reasoning": "brief explanation"
}}"""


def build_transcript_prompt(transcript: str, *, excerpt_chars: int = 4000) -> str:
    return f"Analyze this BJJ transcript:\n\n{str(transcript or '')[: max(0, int(excerpt_chars))]}"
