#!/usr/bin/env python3
"""
Diagnostic script to inspect rule ranking for sample queries.
Prints semantic similarity scores, the keyword fallback and the rendered
compact context for each query.
"""

import sys
import logging
from pathlib import Path
from dotenv import load_dotenv

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

load_dotenv()
logging.basicConfig(level=logging.INFO, format='%(name)s - %(message)s')
logger = logging.getLogger(__name__)


def diagnose_retrieval(queries: list[str]):
    """Run diagnostic queries and show scores at each stage."""
    from execution.legal_rules_rag.legal_rules_rag import create_legal_rules_rag

    rag = create_legal_rules_rag()
    if not rag.initialize():
        print(f"Failed to load legal rules: {rag.load_error}")
        return

    stats = rag.get_stats()
    print("\n" + "=" * 80)
    print("RULE RETRIEVAL DIAGNOSTICS")
    print(f"rules={stats['total']} version={stats['version']} "
          f"model={stats['embedding_model']} embeddings_ready={stats['embeddings_ready']}")
    print("=" * 80)

    for query in queries:
        print(f"\nQUERY: {query}")
        print("-" * 80)

        print("Semantic ranking:")
        for i, r in enumerate(rag.search_relevant_rules(query, top_k=5)):
            score = f"{r.similarity_score:.4f}" if r.is_scored else "unscored"
            print(f"   {i + 1}. {score} | {r.id} | {r.text.splitlines()[0][:50]}...")

        matches = rag.search_rules(query)
        print(f"Keyword matches: {[r.id for r in matches] or 'none'}")

        print("Compact context:")
        print(rag.build_compact_context(query, max_rules=3) or "   (empty)")

    print("\n" + "=" * 80)
    print("METRICS")
    print(rag.metrics.get_metrics_dict())


if __name__ == "__main__":
    test_queries = sys.argv[1:] or [
        "How do I handle payment terms?",
        "Is 'will' acceptable for obligations?",
        "termination for convenience",
        "and/or",
    ]
    diagnose_retrieval(test_queries)
