"""Firesearch - multi-round web research

Simple CLI for running research queries.
"""

import argparse
import asyncio

from firesearch.agents.orchestrator import run_research
from firesearch.config import ResearchConfig, settings
from firesearch.models.events import SSEEvent
from firesearch.models.research import ResearchMode, ResearchRequest


def print_event(event: SSEEvent) -> None:
    event_type = event.event.value
    data = event.data

    if event_type == "phase-changed":
        print(f"\n[~] {data.get('message', data.get('phase'))}")

    elif event_type == "note":
        print(f"  - {data.get('message', '')}")

    elif event_type == "search-started":
        print(f"  [{data.get('index')}/{data.get('total')}] Searching: {data.get('query')}")

    elif event_type == "documents-found":
        print(f"      {len(data.get('documents', []))} results")

    elif event_type == "document-ready":
        if data.get("fact"):
            print(f"      [+] {data.get('fact')}")

    elif event_type == "answer-chunk":
        print(data.get("text", ""), end="", flush=True)

    elif event_type == "final":
        documents = data.get("documents", [])
        print(f"\n\n[*] Research Complete!")
        print(f"   Runtime: {data.get('runtime_ms')}ms")
        print(f"   Sources: {len(documents)}")
        for i, doc in enumerate(documents, 1):
            print(f"   [{i}] {doc.get('title') or doc.get('url')} - {doc.get('url')}")
        follow_ups = data.get("follow_ups") or []
        if follow_ups:
            print("\nFollow-up questions:")
            for question in follow_ups:
                print(f"   * {question}")

    elif event_type == "failed":
        label = "Error" if data.get("fatal") else "Warning"
        print(f"\n[!] {label} ({data.get('kind')}): {data.get('message', 'Unknown error')}")


def main():
    parser = argparse.ArgumentParser(description="Firesearch research tool")
    parser.add_argument("--query", "-q", required=True, help="Research question, or a book title with --book")
    parser.add_argument("--book", action="store_true", help="Summarize a book instead of answering a question")
    parser.add_argument("--author", "-a", help="Book author (with --book)")
    parser.add_argument("--model", "-m", help="Quality model for the final answer (default: from config)")

    args = parser.parse_args()

    config = ResearchConfig.from_settings(settings)
    if args.model:
        config = config.with_overrides(quality_model=args.model)
    request = ResearchRequest(
        topic=args.query,
        mode=ResearchMode.BOOK if args.book else ResearchMode.QUESTION,
        author=args.author,
    )

    print(f"Research query: {request.display_topic}")
    print("-" * 50)
    asyncio.run(run_research(request, print_event, config=config))


if __name__ == "__main__":
    main()
