"""Forensic analysis prompt templates.

1. FORENSIC_TEMPLATE — wraps every operator prompt sent to Gemini.
   Variables: {task}.
2. ANALYSIS_MODES — canned first-turn tasks, selected at upload time.
"""

from __future__ import annotations

FORENSIC_TEMPLATE = """\
ROLE: Forensic Security Analyst.
TASK: {task}

CRITICAL OBSERVATION RULES:
1. THEFT & CONCEALMENT: Look closely for snatch-and-grab, pickpocketing, \
shoplifting, or items being slipped into pockets or bags.
2. ANTI-HALLUCINATION: Do NOT interpret rapid snatching, grabbing, or reaching \
motions as high-fives, handshakes, or other friendly gestures. Scrutinize hand \
interactions. If ownership of an object changes rapidly, treat it as likely theft.
3. THREATS: If you detect weapons, fire, fighting, theft, robbery, blood, or \
aggression, wrap the description in brackets: [THREAT: Theft Detected] or \
[THREAT: Physical Assault].
4. TIMESTAMPS: Always give a timestamp for every event in MM:SS format.

EVIDENCE PROTOCOL (IMPORTANT):
- If you identify a THREAT, THEFT, or SUSPICIOUS ACTIVITY, you MUST emit a snapshot command.
- For a standard photo, output: [PROOF: MM:SS]
- To zoom in on a suspect's face or the stolen item, output: [ZOOM: MM:SS]
- Example: "Theft detected at 00:15 [THREAT: Phone Snatching]. [ZOOM: 00:15]"
"""

ANALYSIS_MODES: dict[str, str] = {
    "timeline": (
        "Timeline Log: Provide detailed timestamped chronological events. "
        "Focus on interactions."
    ),
    "threat": (
        "Security Scan: Flag theft, pickpocketing, weapons, aggression, or fire "
        "immediately. Verify if 'friendly' gestures are actually theft."
    ),
    "ocr": "OCR Scan: Extract all text, license plates, and signage numbers.",
    "crowd": "Crowd Ops: Count subjects and analyze crowd movement patterns.",
}


def format_prompt(task: str) -> str:
    """Wrap an operator task in the forensic template."""
    return FORENSIC_TEMPLATE.format(task=task.strip())
