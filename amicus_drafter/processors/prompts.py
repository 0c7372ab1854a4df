"""
Wave prompts

One builder per wave. Builders are pure: they read the wave context (and, for
waves 2-8, the current brief) and return the user prompt. Every prompt ends
with the WAVE REPORT request parsed by split_wave_report().
"""

import json
from typing import Dict, List

from amicus_drafter.utils.json_extract import WAVE_REPORT_MARKER

PLACEHOLDER = '[CITATION NEEDED]'

DOCUMENT_CHAR_LIMIT = 4000
REFERENCE_SAMPLE_CHARS = 2000

SYSTEM_PROMPT = """You are an expert Supreme Court advocate drafting an amicus curiae brief with a team of attorneys.

You write in the formal, persuasive register of briefs filed in the Supreme Court of the United States. You follow the attorney-approved outline exactly, never invent quotations, and mark any authority you cannot verify with [CITATION NEEDED].

Return the complete brief text every time. Never return only the changed passages, and never add commentary before the brief."""

WAVE_REPORT_INSTRUCTIONS = f"""
AFTER THE BRIEF:
On a new line write {WAVE_REPORT_MARKER} and then a single JSON object:
{{"section_changes": [{{"section": "<heading>", "change": "<what you changed>"}}], "notes": "<one sentence>"}}
Nothing may follow the JSON object."""


def format_strategy_chat(messages: List[Dict]) -> str:
    parts = []
    for message in messages or []:
        role = 'ATTORNEY' if message.get('role') == 'user' else 'CONSTITUTIONAL EXPERT'
        parts.append(f"--- {role} ---\n{message.get('content', '')}")
    return '\n\n'.join(parts) if parts else '(No strategy discussion recorded)'


def build_backbone_prompt(context) -> str:
    """Wave 1. Uses only the outline, strategy chat and initial discussion."""
    case = context.case_information or {}

    initial_discussion = ''
    if case.get('transcript'):
        initial_discussion = f"\n=== INITIAL ATTORNEY DISCUSSION ===\n{case['transcript']}\n"

    return f"""You are generating a Supreme Court amicus brief backbone draft. This is Wave 1 of an 8-wave process.

CRITICAL INSTRUCTIONS:
- Use ONLY the approved outline, strategy chat, and initial attorney discussion
- Do NOT add research, documents, or case citations yet; later waves integrate them
- Generate 8,000-10,000 words (will be trimmed later)
- Focus on tight section-by-section structure
- Insert {PLACEHOLDER} wherever a legal citation will be attached in a later wave
- Follow the exact approved outline structure

=== APPROVED OUTLINE (MANDATORY STRUCTURE) ===
{context.approved_outline}

=== STRATEGY CHAT DISCUSSION ===
{format_strategy_chat(context.strategy_chat_history)}
{initial_discussion}
=== CASE INFORMATION ===
Case Name: {case.get('case_name') or 'Unknown Case'}
Court Level: {case.get('court_level') or 'Supreme Court'}
Constitutional Question: {case.get('constitutional_question') or 'Constitutional analysis required'}

GENERATION REQUIREMENTS:
1. Follow the approved outline EXACTLY - every section, argument, and point must be included
2. Generate comprehensive content for each section (aim for 8,000-10,000 words total)
3. Use {PLACEHOLDER} placeholders where legal citations will be added later
4. Write in Supreme Court amicus brief style - formal, persuasive, constitutional
5. Reference the strategy discussion themes throughout
6. Build strong logical flow between sections
{WAVE_REPORT_INSTRUCTIONS}

Generate the complete brief backbone now:"""


def historical_sources(research: Dict) -> List[Dict]:
    research = research or {}
    return (
        list(research.get('founding_documents') or [])
        + list(research.get('historical_cases') or [])
        + list(research.get('colonial_examples') or [])
    )


def _format_sources(items: List[Dict], context_key: str, context_label: str) -> str:
    if not items:
        return '\n(None provided)'
    blocks = []
    for i, item in enumerate(items, 1):
        block = (
            f"\n{i}. {item.get('title', 'Untitled')}"
            f"\nSignificance: {item.get('significance', '')}"
            f"\nKey Quote: \"{item.get('key_quote', '')}\""
        )
        if context_key and item.get(context_key):
            block += f"\n{context_label}: {item[context_key]}"
        block += f"\nStrategic Appeal: {item.get('strategic_appeal', '')}"
        blocks.append(block)
    return '\n'.join(blocks)


def build_historical_prompt(context, brief: str) -> str:
    research = context.historical_research or {}
    total = len(historical_sources(research))

    return f"""You are enhancing a Supreme Court amicus brief with historical research. This is Wave 2 of 8.

INSTRUCTIONS:
- Integrate ALL provided historical sources where relevant
- Add direct quotes with pinpoint citations
- Maintain the existing structure and arguments
- Every historical source MUST be used somewhere

CURRENT BRIEF TO ENHANCE:
{brief}

=== HISTORICAL RESEARCH TO INTEGRATE ===

FOUNDING DOCUMENTS:{_format_sources(research.get('founding_documents'), None, '')}

HISTORICAL CASES:{_format_sources(research.get('historical_cases'), 'case_context', 'Case Context')}

COLONIAL EXAMPLES:{_format_sources(research.get('colonial_examples'), 'historical_context', 'Historical Context')}

ENHANCEMENT REQUIREMENTS:
1. Integrate quotes and citations from ALL {total} historical sources above
2. Add them where they strengthen existing arguments
3. Citations will be normalized to Bluebook in a later wave; keep {PLACEHOLDER} markers you cannot fill
4. Maintain original structure and flow
{WAVE_REPORT_INSTRUCTIONS}

Generate the enhanced brief with historical integration:"""


def build_document_prompt(context, brief: str) -> str:
    summaries = {
        s.get('document_id'): s for s in (context.document_summaries or []) if isinstance(s, dict)
    }

    blocks = []
    for i, doc in enumerate(context.selected_documents, 1):
        content = doc.get('content') or ''
        excerpt = content[:DOCUMENT_CHAR_LIMIT]
        if len(content) > DOCUMENT_CHAR_LIMIT:
            excerpt += '...[TRUNCATED]'
        block = f"""
=== DOCUMENT {i} ===
Title: {doc.get('title', '')}
Citation: {doc.get('citation', '')}
Type: {doc.get('type', '')}
Relevance: {doc.get('relevance', '')}
Full Content: {excerpt}"""
        summary = summaries.get(doc.get('id'))
        if summary and summary.get('ai_summary'):
            block += f"\nSummary: {summary['ai_summary']}"
        blocks.append(block)

    return f"""You are enhancing a Supreme Court amicus brief with uploaded legal documents. This is Wave 3 of 8.

INSTRUCTIONS:
- Integrate ALL uploaded documents where relevant
- Use direct quotes with proper citations
- Mandatory: each document MUST be cited at least once
- Maintain existing structure and historical citations

CURRENT BRIEF TO ENHANCE:
{brief}

=== UPLOADED DOCUMENTS TO INTEGRATE ===
{''.join(blocks)}

INTEGRATION REQUIREMENTS:
1. Use EVERY document listed above - mandatory inclusion
2. Extract key quotes and legal holdings
3. Add citations with pinpoint page references
4. Integrate where they strengthen constitutional arguments
5. Target: {len(context.selected_documents)} new document citations minimum
{WAVE_REPORT_INSTRUCTIONS}

Generate the enhanced brief with document integration:"""


def build_justice_prompt(context, brief: str) -> str:
    blocks = []
    for name, analysis in (context.justice_analysis or {}).items():
        block = f"\n=== JUSTICE {str(name).upper()} ==="
        if isinstance(analysis, dict):
            for key, label in (
                ('ideology_scores', 'Ideology Scores'),
                ('key_factors', 'Key Factors'),
                ('persuasion_entry_points', 'Persuasion Points'),
                ('strategy', 'Strategy'),
            ):
                if analysis.get(key):
                    block += f"\n{label}: {json.dumps(analysis[key])}"
        else:
            block += f"\n{analysis}"
        blocks.append(block)

    return f"""You are enhancing a Supreme Court amicus brief with justice-specific targeting. This is Wave 4 of 8.

INSTRUCTIONS:
- Tailor language, precedents, and framing to appeal to specific justices
- Reference justices' key opinions and judicial philosophies
- Maintain existing content while adding targeted persuasion elements

CURRENT BRIEF TO ENHANCE:
{brief}

=== JUSTICE ANALYSIS FOR TARGETING ===
{''.join(blocks)}

TARGETING REQUIREMENTS:
1. Reframe key arguments using language that resonates with target justices
2. Add references to justices' landmark opinions where relevant
3. Use originalist or textualist framing where it persuades, purposive framing elsewhere
4. Target swing justices with balanced, moderate framing
{WAVE_REPORT_INSTRUCTIONS}

Generate the enhanced brief with justice targeting:"""


def build_adversarial_prompt(context, brief: str) -> str:
    return f"""You are enhancing a Supreme Court amicus brief with adversarial analysis. This is Wave 5 of 8.

INSTRUCTIONS:
- Anticipate the strongest opposing arguments
- Add preemptive responses and rebuttals
- Include superior counter-authorities and precedents
- Strengthen weak points identified in current arguments
- Maintain persuasive tone while addressing opposition

CURRENT BRIEF TO ENHANCE:
{brief}

=== STRATEGY CHAT FOR OPPOSITION INSIGHTS ===
{format_strategy_chat(context.strategy_chat_history)}

ADVERSARIAL ENHANCEMENT REQUIREMENTS:
1. Identify the 5-7 strongest arguments the other side will make
2. Add preemptive responses in the appropriate sections
3. Use "To be sure..." or "While opponents may argue..." formulations
4. Add distinguishing analysis for unfavorable precedents
5. Include policy arguments showing why the opposing position fails
{WAVE_REPORT_INSTRUCTIONS}

Generate the enhanced brief with adversarial analysis:"""


def build_style_prompt(context, brief: str) -> str:
    reference = context.reference_brief
    if reference:
        content = reference.get('content') or ''
        sample = content[:REFERENCE_SAMPLE_CHARS] + ('...' if len(content) > REFERENCE_SAMPLE_CHARS else '')
        reference_block = f"""
=== REFERENCE BRIEF FOR STYLE MATCHING ===
Structure: {json.dumps(reference.get('structure') or {})}
Content Sample: {sample or 'No content sample'}"""
    else:
        reference_block = '\n(No reference brief provided; apply Supreme Court standard style.)'

    return f"""You are refining a Supreme Court amicus brief for style conformance. This is Wave 6 of 8.

INSTRUCTIONS:
- Match tone, structure, and citation density to the reference brief or Supreme Court standards
- Ensure a formal, authoritative voice throughout
- Standardize section headings and formatting
- Polish transitions between sections and arguments

CURRENT BRIEF TO REFINE:
{brief}
{reference_block}

STYLE REQUIREMENTS:
1. Use formal Supreme Court amicus brief tone throughout
2. Use consistent heading formats (ALL CAPS, Roman numerals)
3. Polish transitions between major arguments
4. Use consistent terminology for key concepts
5. Do NOT remove citations or {PLACEHOLDER} markers
{WAVE_REPORT_INSTRUCTIONS}

Generate the style-polished brief:"""


def build_citation_prompt(context, brief: str) -> str:
    return f"""You are finalizing citations for a Supreme Court amicus brief. This is Wave 7 of 8.

INSTRUCTIONS:
- Replace EVERY {PLACEHOLDER} marker with a properly formatted Bluebook (21st ed.) citation
- If no real authority supports the proposition, rewrite the sentence so it needs none; never invent a case
- Normalize ALL existing citations to Bluebook format
- Ensure pinpoint citations for all quoted material
- Use proper signals ("See", "See also", "Cf.", "But see") and "id." / "supra" where appropriate

CURRENT BRIEF TO FINALIZE:
{brief}

BLUEBOOK FORMATTING REQUIREMENTS:
1. Cases: Case Name v. Party, 123 U.S. 456, 460 (1900)
2. Constitutional provisions: U.S. Const. amend. XIV, § 1
3. Statutes: 42 U.S.C. § 1983 (2018)
4. Secondary sources: law review citation format

Begin the brief with a TABLE OF AUTHORITIES grouped as:
Constitutional Provisions; Supreme Court Cases; Court of Appeals Cases; District Court Cases; State Cases; Statutes; Legislative Materials; Secondary Sources.
{WAVE_REPORT_INSTRUCTIONS}

Generate the brief with Bluebook citations and Table of Authorities:"""


def build_final_prompt(context, brief: str, target_word_count: int) -> str:
    current = len(brief.split())
    if current > target_word_count:
        task = f'Trim to {target_word_count:,} words while preserving the strongest arguments'
    else:
        task = 'Final polish and consistency check'

    return f"""You are finalizing a Supreme Court amicus brief. This is Wave 8 of 8 - FINAL VERSION.

INSTRUCTIONS:
- {task}
- Ensure flow between all sections
- Eliminate redundancy and weak arguments
- Polish the introduction and conclusion for maximum impact
- Verify cross-references and internal consistency
- Keep every citation that supports a remaining argument

CURRENT BRIEF TO FINALIZE ({current:,} words):
{brief}

=== STRATEGY CHAT FOR FINAL CONSISTENCY ===
{format_strategy_chat(context.strategy_chat_history)}

=== APPROVED OUTLINE ===
{context.approved_outline}

TARGET: About {target_word_count:,} words of Supreme Court-quality argument.
{WAVE_REPORT_INSTRUCTIONS}

Generate the final, consolidated brief:"""
