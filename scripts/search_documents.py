"""Search entrypoint.

This script runs a single query through the retrieval pipeline and prints
the ranked chunks.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from tessera_rag.app.container import build_container
from tessera_rag.config import GlobalConfig


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Search the vector store")

    parser.add_argument("query", type=str, help="Query text.")
    parser.add_argument(
        "--config-file",
        "-c",
        required=True,
        type=str,
        help="Path to the YAML configuration file.",
    )
    parser.add_argument("--limit", "-k", type=int, default=None, help="Maximum number of results.")
    parser.add_argument("--min-similarity", type=float, default=None, help="Minimum similarity in [0, 1].")
    parser.add_argument(
        "--max-chunks-per-document",
        type=int,
        default=None,
        help="Per-document cap; 0 disables diversity capping.",
    )
    parser.add_argument(
        "--adaptive",
        action="store_true",
        help="Enable the adaptive similarity threshold.",
    )
    parser.add_argument(
        "--filter",
        "-f",
        type=str,
        default=None,
        help='Metadata filter as a JSON object, e.g. \'{"category": "ai"}\'.',
    )

    return parser.parse_args()


def main() -> None:
    args = parse_args()

    cfg = GlobalConfig.load(args.config_file)
    container = build_container(cfg)

    overrides = {}
    if args.limit is not None:
        overrides["limit"] = args.limit
    if args.min_similarity is not None:
        overrides["min_similarity"] = args.min_similarity
    if args.max_chunks_per_document is not None:
        overrides["max_chunks_per_document"] = args.max_chunks_per_document
    if args.adaptive:
        overrides["use_adaptive_threshold"] = True
    if args.filter:
        overrides["filters"] = json.loads(args.filter)

    results = container.retrieval_pipeline.search(args.query, **overrides)
    if not results:
        print("No results.")
        return

    for rank, candidate in enumerate(results, start=1):
        source = candidate.metadata.get("source", "-")
        print(f"[{rank}] similarity={candidate.similarity:.4f} source={source}")
        print(f"    {candidate.content.strip()[:200]}")


if __name__ == "__main__":
    main()
