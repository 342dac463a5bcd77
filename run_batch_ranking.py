import argparse
import asyncio
import csv
import json
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

load_dotenv()

from jobsync.models.ranking import RankedApplicant
from jobsync.orchestrator import RankingOrchestrator
from jobsync.services.dictionary_loader import DictionaryLoader
from jobsync.services.errors import InvalidRecordError
from jobsync.services.llm_service import LLMService

FIELDNAMES = [
    "run_id",
    "timestamp_utc",
    "job_id",
    "job_title",
    "rank",
    "applicant_id",
    "applicant_name",
    "match_score",
    "education_score",
    "experience_score",
    "skills_score",
    "eligibility_score",
    "matched_skills_count",
    "matched_eligibilities_count",
    "algorithm_used",
    "ensemble_method",
    "algorithm1_score",
    "algorithm2_score",
    "algorithm3_score",
    "score_difference",
    "ranking_reasoning",
    "ai_insights",
    "llm_provider",
    "llm_model",
    "normalized",
    "elapsed_ms",
    "error",
]


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _read_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _as_job_list(data: Any) -> List[Dict[str, Any]]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return [data]
    raise SystemExit("Il file job deve contenere un oggetto o una lista di oggetti JSON")


def _applicants_for(job: Dict[str, Any], data: Any) -> List[Dict[str, Any]]:
    """Lista unica per tutti i job, oppure mappa job id -> lista."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return data.get(str(job.get("id", "")), [])
    raise SystemExit("Il file candidati deve contenere una lista o una mappa job id -> lista")


def _ranked_row(base: Dict[str, Any], applicant: RankedApplicant) -> Dict[str, Any]:
    details = applicant.algorithm_details
    row = dict(base)
    row.update({
        "rank": applicant.rank,
        "applicant_id": applicant.applicant_id,
        "applicant_name": applicant.applicant_name,
        "match_score": applicant.match_score,
        "education_score": round(applicant.education_score, 2),
        "experience_score": round(applicant.experience_score, 2),
        "skills_score": round(applicant.skills_score, 2),
        "eligibility_score": round(applicant.eligibility_score, 2),
        "matched_skills_count": applicant.matched_skills_count,
        "matched_eligibilities_count": applicant.matched_eligibilities_count,
        "algorithm_used": applicant.algorithm_used,
        "ensemble_method": details.ensemble_method if details else "",
        "algorithm1_score": details.algorithm1_score if details else "",
        "algorithm2_score": details.algorithm2_score if details else "",
        "algorithm3_score": details.algorithm3_score if details and details.algorithm3_score is not None else "",
        "score_difference": details.score_difference if details else "",
        "ranking_reasoning": applicant.ranking_reasoning,
        "ai_insights": applicant.ai_insights or "",
    })
    return row


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description=(
            "Classifica i candidati di uno o più job e salva un CSV con score, "
            "provenienza degli algoritmi e insight."
        )
    )
    parser.add_argument("--job", required=True, help="File JSON con un job (oggetto) o più job (lista).")
    parser.add_argument("--applicants", required=True, help="File JSON con i candidati (lista, o mappa job id -> lista).")
    parser.add_argument("--out", default="data/rankings/rankings.csv", help="Percorso output CSV.")
    parser.add_argument("--verbose", action="store_true", help="Abilita log verbose dell'orchestrator.")
    parser.add_argument("--no-normalize", action="store_true", help="Salta la normalizzazione di degree ed eligibility.")
    parser.add_argument("--no-insights", action="store_true", help="Non richiede gli insight AI sui primi candidati.")

    parser.add_argument("--llm-provider", choices=["ollama", "lmstudio"], default=os.getenv("JOBSYNC_LLM_PROVIDER", "lmstudio"))
    parser.add_argument("--ollama-model", default=os.getenv("OLLAMA_MODEL", "llama3.2"))
    parser.add_argument("--lmstudio-model", default=os.getenv("LMSTUDIO_MODEL", "meta-llama-3.1-8b-instruct"))
    parser.add_argument("--lmstudio-base-url", default=os.getenv("LMSTUDIO_BASE_URL", "http://localhost:1234/v1"))
    parser.add_argument("--lmstudio-api-key", default=os.getenv("LMSTUDIO_API_KEY", "lmstudio"))
    parser.add_argument("--temperature", type=float, default=0.3)
    parser.add_argument("--llm-timeout", type=int, default=60, help="Timeout (s) di ogni chiamata al modello.")
    parser.add_argument("--timeout", type=float, default=None, help="Timeout (s) per tie-break e insight.")

    parser.add_argument("--degrees", default=None, help="Dizionario degree (YAML o CSV).")
    parser.add_argument("--eligibilities", default=None, help="Dizionario eligibility (YAML o CSV).")

    args = parser.parse_args(argv)

    project_root = Path(__file__).resolve().parent
    job_path = (project_root / args.job).resolve()
    applicants_path = (project_root / args.applicants).resolve()
    out_path = (project_root / args.out).resolve()
    out_path.parent.mkdir(parents=True, exist_ok=True)

    jobs = _as_job_list(_read_json(job_path))
    applicants_data = _read_json(applicants_path)

    llm_service = LLMService(
        provider=args.llm_provider,
        model=args.ollama_model,
        lmstudio_model=None if args.llm_provider == "ollama" else args.lmstudio_model,
        lmstudio_base_url=args.lmstudio_base_url,
        lmstudio_api_key=args.lmstudio_api_key,
        temperature=args.temperature,
        timeout=args.llm_timeout,
        verbose=args.verbose,
    )
    dictionary_loader = DictionaryLoader(
        degrees_path=args.degrees,
        eligibilities_path=args.eligibilities,
        verbose=args.verbose,
    )
    orchestrator = RankingOrchestrator(
        llm_service=llm_service,
        dictionary_loader=dictionary_loader,
        verbose=args.verbose,
    )

    return asyncio.run(_run(args, jobs, applicants_data, orchestrator, llm_service, out_path))


async def _run(
    args: argparse.Namespace,
    jobs: List[Dict[str, Any]],
    applicants_data: Any,
    orchestrator: RankingOrchestrator,
    llm_service: LLMService,
    out_path: Path,
) -> int:
    write_header = not out_path.exists()
    all_rows: List[Dict[str, Any]] = []

    with out_path.open("a", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=FIELDNAMES)
        if write_header:
            writer.writeheader()

        for job in jobs:
            job_id = str(job.get("id", ""))
            run_id = f"{job_id or 'job'}__{int(time.time())}"
            base = {name: "" for name in FIELDNAMES}
            base.update({
                "run_id": run_id,
                "timestamp_utc": _utc_now_iso(),
                "job_id": job_id,
                "job_title": job.get("title") or "",
                "llm_provider": args.llm_provider,
                "llm_model": llm_service.model,
                "normalized": not args.no_normalize,
            })

            started = time.perf_counter()
            try:
                ranked = await orchestrator.rank_applicants_for_job(
                    job,
                    _applicants_for(job, applicants_data),
                    timeout=args.timeout,
                    normalize=not args.no_normalize,
                    include_insights=not args.no_insights,
                )
            except InvalidRecordError as e:
                row = dict(base)
                row["error"] = f"{type(e).__name__}: {e}"
                row["elapsed_ms"] = int((time.perf_counter() - started) * 1000)
                writer.writerow(row)
                f.flush()
                all_rows.append(row)
                print(f"  ERRORE job {job_id}: {row['error']}")
                continue

            elapsed_ms = int((time.perf_counter() - started) * 1000)
            for applicant in ranked:
                row = _ranked_row(base, applicant)
                row["elapsed_ms"] = elapsed_ms
                writer.writerow(row)
                all_rows.append(row)
            f.flush()
            top = ranked[0] if ranked else None
            top_label = f"{top.applicant_name or top.applicant_id} ({top.match_score:.2f})" if top else "-"
            print(f"  OK job {job_id}: {len(ranked)} candidati, primo: {top_label}")

    _print_summary(all_rows, out_path)
    return 0


# ═══════════════════════════════════════════════════════════════════════
# SUMMARY
# ═══════════════════════════════════════════════════════════════════════

def _safe_float(row: Dict[str, Any], key: str, default: float = 0.0) -> float:
    try:
        return float(row[key])
    except (ValueError, KeyError, TypeError):
        return default


def _median(values: List[float]) -> float:
    if not values:
        return 0.0
    s = sorted(values)
    n = len(s)
    if n % 2 == 1:
        return s[n // 2]
    return (s[n // 2 - 1] + s[n // 2]) / 2


def _print_summary(rows: List[Dict[str, Any]], csv_path: Path) -> None:
    ok_rows = [r for r in rows if not r.get("error")]
    error_rows = [r for r in rows if r.get("error")]
    scores = [_safe_float(r, "match_score") for r in ok_rows]
    tie_breaker_rows = [r for r in ok_rows if r.get("ensemble_method") == "tie_breaker"]
    ai_adjusted = [r for r in ok_rows if "[AI Tie-break:" in (r.get("ranking_reasoning") or "")]
    with_insights = [r for r in ok_rows if r.get("ai_insights")]

    print("\n" + "=" * 70)
    print("  SUMMARY – Batch Ranking Results")
    print("=" * 70)
    print(f"  Candidati classificati: {len(ok_rows)}  (job in errore: {len(error_rows)})")
    if scores:
        print(f"  Score: media={sum(scores)/len(scores):.1f}  mediana={_median(scores):.1f}  "
              f"min={min(scores):.1f}  max={max(scores):.1f}")
        print(f"  Ensemble tie-breaker: {len(tie_breaker_rows)}/{len(ok_rows)}  "
              f"AI tie-break: {len(ai_adjusted)}  Insight: {len(with_insights)}")
    print(f"  Output CSV: {csv_path}")
    print("=" * 70)


if __name__ == "__main__":
    raise SystemExit(main())
