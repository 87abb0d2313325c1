#!/usr/bin/env python3
"""
Batch Question Processor for the NLQ gateway

Reads questions from a text file, answers each one through the same
ChatService the Flask API uses, and writes the responses as JSON.
"""

import os
import sys
import json
import time
import argparse
from datetime import datetime
from pathlib import Path
from typing import List, Dict, Any, Optional

from config import config
from gateway.chat import ChatService


# Global chat service instance (same wiring as the Flask API)
chat_service: Optional[ChatService] = None


def get_chat_service() -> ChatService:
    """Get or initialize the chat service."""
    global chat_service
    if chat_service is None:
        from app import build_chat_service
        chat_service = build_chat_service()
    return chat_service


def read_questions_from_file(file_path: str) -> List[str]:
    """Read questions, skipping comments, blank lines and "N. " numbering."""
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"Questions file not found: {file_path}")

    questions = []
    with open(file_path, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith('#'):
                continue

            number, sep, rest = line.partition('. ')
            if sep and number.isdigit():
                line = rest.strip()
            if line:
                questions.append(line)

    print(f"Loaded {len(questions)} questions from {file_path}")
    return questions


def process_question(service: ChatService, question: str, question_id: int) -> Dict[str, Any]:
    """Answer one question in its own session so turns do not leak into each other."""
    start_time = time.time()
    print(f"Processing question {question_id}: {question[:60]}{'...' if len(question) > 60 else ''}")

    try:
        response = service.chat(question, session_id=f"batch-{question_id}")
    except Exception as e:
        print(f"Question {question_id} failed: {e}")
        response = {'success': False, 'type': 'error', 'message': str(e)}

    response.update(
        question=question,
        question_id=question_id,
        processing_time=time.time() - start_time,
        timestamp=time.strftime('%Y-%m-%d %H:%M:%S'),
    )
    return response


def save_results_to_json(results: List[Dict[str, Any]], output_dir: str = "output") -> str:
    """Save one file per question plus a combined summary file."""
    Path(output_dir).mkdir(parents=True, exist_ok=True)

    for result in results:
        filepath = os.path.join(output_dir, f"question_{result['question_id']:02d}.json")
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(result, f, indent=2, ensure_ascii=False, default=str)

    combined_filepath = os.path.join(output_dir, "all_results.json")
    with open(combined_filepath, 'w', encoding='utf-8') as f:
        json.dump({
            "batch_info": {
                "total_questions": len(results),
                "successful": sum(1 for r in results if r['success']),
                "failed": sum(1 for r in results if not r['success']),
                "timestamp": datetime.now().isoformat(),
                "total_processing_time": sum(r.get('processing_time', 0) for r in results)
            },
            "results": results
        }, f, indent=2, ensure_ascii=False, default=str)

    print(f"Saved {len(results)} individual result files and combined results to {output_dir}")
    return combined_filepath


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Answer a file of questions through the NLQ gateway")
    parser.add_argument("--questions", default="questions.txt", help="Questions file, one per line")
    parser.add_argument("--output", default="output", help="Directory for JSON results")
    return parser.parse_args(argv)


def main(argv=None):
    """Main batch processing function."""
    args = parse_args(argv)
    print("🚀 Starting NLQ Batch Question Processor")

    if not config.validate():
        print("❌ Configuration validation failed")
        return 1

    try:
        questions = read_questions_from_file(args.questions)
    except OSError as e:
        print(f"❌ Failed to read questions file: {e}")
        return 3
    if not questions:
        print("❌ No questions found in file")
        return 3

    service = get_chat_service()
    results = []
    for i, question in enumerate(questions, 1):
        results.append(process_question(service, question, i))
        if i % 5 == 0:
            print(f"Progress: {i}/{len(questions)} questions processed")

    try:
        output_file = save_results_to_json(results, args.output)
    except OSError as e:
        print(f"❌ Failed to save results: {e}")
        return 4

    failed = sum(1 for r in results if not r['success'])
    print("=" * 60)
    print("📊 BATCH PROCESSING SUMMARY")
    print("=" * 60)
    print(f"Total Questions: {len(questions)}")
    print(f"Successful: {len(results) - failed}")
    print(f"Failed: {failed}")
    print(f"Total processing time: {sum(r['processing_time'] for r in results):.2f}s")
    print(f"Results saved to: {output_file}")
    service.gateway.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
