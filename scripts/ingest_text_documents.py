"""Text ingestion entrypoint.

This script reads local text files (or every matching file under a
directory), chunks them, embeds the chunks, and writes them to the
configured vector store.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from tessera_rag.app.container import build_container
from tessera_rag.config import GlobalConfig


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingest text documents into the vector store")

    parser.add_argument(
        "paths",
        nargs="+",
        type=str,
        help="Files or directories to ingest.",
    )

    parser.add_argument(
        "--config-file",
        "-c",
        required=True,
        type=str,
        help="Path to the YAML configuration file.",
    )

    parser.add_argument(
        "--pattern",
        "-g",
        required=False,
        type=str,
        default="*.txt",
        help="Glob used to pick files inside directories (default: *.txt).",
    )

    parser.add_argument(
        "--qdrant-collection-name",
        "--collection-name",
        required=False,
        type=str,
        default=None,
        help="Override Qdrant collection name from config (optional).",
    )

    parser.add_argument(
        "--encoding",
        required=False,
        type=str,
        default="utf-8",
        help="Text encoding of the input files (default: utf-8).",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging.",
    )

    return parser.parse_args()


def _override_qdrant_collection_name(cfg: GlobalConfig, cli_value: str | None) -> None:
    if not cli_value:
        return

    vector_store = cfg.raw.get("vector_store")
    if vector_store is None:
        cfg.raw["vector_store"] = {
            "type": "qdrant",
            "collection_name": cli_value,
        }
        return

    if isinstance(vector_store, dict):
        vector_store["collection_name"] = cli_value
        return

    raise TypeError("'vector_store' config must be a mapping to override collection_name.")


def _collect_files(paths: list[str], pattern: str) -> list[Path]:
    files: list[Path] = []
    for raw in paths:
        path = Path(raw).expanduser()
        if path.is_dir():
            files.extend(sorted(p for p in path.rglob(pattern) if p.is_file()))
        elif path.is_file():
            files.append(path)
        else:
            raise FileNotFoundError(f"No such file or directory: {path}")
    return files


def main() -> None:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    cfg = GlobalConfig.load(args.config_file)
    _override_qdrant_collection_name(cfg, args.qdrant_collection_name)
    container = build_container(cfg)

    files = _collect_files(args.paths, args.pattern)
    print(f"Ingesting {len(files)} file(s)...")

    pipeline = container.rag_pipeline
    for path in files:
        content = path.read_text(encoding=args.encoding)
        if not content.strip():
            print(f"Skipping empty file: {path}")
            continue
        document_id = pipeline.add_document(
            content,
            metadata={"source": str(path), "filename": path.name},
        )
        print(f"{path} -> {document_id}")

    print("Ingestion complete!")


if __name__ == "__main__":
    main()
