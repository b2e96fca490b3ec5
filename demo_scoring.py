#!/usr/bin/env python3
"""
Complete Pipeline Demo: Questionnaire → Analysis → Scores → Signed Envelope

Shows the full workflow:
1. Load configuration (surveyscore.yaml if present, defaults otherwise)
2. Analyze the example questionnaire's formulas
3. Score the example session
4. Seal the result and verify it again

The signing key comes from the config file or SURVEYSCORE_SIGNING_KEY.
"""

import os
import sys

from surveyscore.analyzer import analyze_questionnaire
from surveyscore.config import configure_logging, load_config
from surveyscore.envelope import Envelope, EnvelopeSigner
from surveyscore.errors import IntegrityError, ScoringError
from surveyscore.examples import build_example_questionnaire, build_example_session
from surveyscore.scoring import ScoringEngine


def main():
    config = load_config()
    configure_logging(config.log_level)

    print("=" * 80)
    print("SCORING DEMO: Questionnaire → Analysis → Scores → Envelope")
    print("=" * 80)

    # =========================================================================
    # STEP 1: Analyze
    # =========================================================================
    print("\n1. ANALYZING QUESTIONNAIRE...")
    questionnaire = build_example_questionnaire()
    report = analyze_questionnaire(
        questionnaire,
        max_depth=config.parser.max_depth,
        max_tokens=config.parser.max_tokens,
    )
    print(f"   ✓ Questions: {report.total_questions}")
    print(f"   ✓ Possible answers: {report.total_possible_answers}")
    print(f"   ✓ Max formula depth: {report.max_formula_depth}")
    print(f"   ✓ Functions used: {report.function_usage}")
    for warning in report.warnings:
        print(f"      - {warning}")

    # =========================================================================
    # STEP 2: Score
    # =========================================================================
    print("\n2. SCORING SESSION...")
    engine = ScoringEngine.from_config(config)
    session = build_example_session(questionnaire)
    try:
        result = engine.score_session(session)
    except ScoringError as e:
        print(f"   ✗ {e}")
        return 1

    for answer in result.answers:
        print(f"   {answer.answer_id}: {answer.formula:<28} {dict(answer.bindings)} -> {answer.value:g}")
    print(f"   ✓ Total: {result.total:g}")
    print(f"   ✓ Breakdown: {result.breakdown()}")

    # =========================================================================
    # STEP 3: Seal and verify
    # =========================================================================
    print("\n3. SEALING RESULT...")
    key = config.envelope.signing_key.get_secret_value() or os.environ.get("SURVEYSCORE_SIGNING_KEY", "")
    if not key:
        print("   (no signing key configured, skipping)")
        return 0

    signer = EnvelopeSigner(key)
    token = signer.seal_session_score(result).to_token()
    print(f"   ✓ Token: {token[:60]}...")

    restored = signer.open_session_score(Envelope.from_token(token))
    print(f"   ✓ Verified total: {restored.total:g}")

    tampered = token[:-2] + ("A" if token[-2] != "A" else "B") + token[-1]
    try:
        signer.open_token(tampered)
    except IntegrityError as e:
        print(f"   ✓ Tampered token rejected: {e.kind.value}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
