from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from apify_client import ApifyClient
from apify_client.errors import ApifyApiError

from .config_schema import ApifyConfig
from .errors import DatasetFetchError, ScrapeJobError
from .normalize import flatten_comment_records, is_post_record
from .run_log import RunLogger

_FAILED_RUN_STATUSES = frozenset({"FAILED", "ABORTED", "TIMED-OUT"})


@dataclass(frozen=True)
class ActorRunRef:
    actor_id: str
    run_id: str
    default_dataset_id: str
    status: str | None = None

    @property
    def finished(self) -> bool:
        return self.status == "SUCCEEDED"


@dataclass(frozen=True)
class ScrapeResult:
    """
    Raw output of one scrape job.

    ``raw_post`` is the first dataset item when it is post-shaped: the scraper puts
    post-level metadata on the first row rather than exposing it separately. Datasets
    with one comment per row carry no post metadata, so ``raw_post`` is None there.
    """

    run: ActorRunRef
    items: Sequence[Mapping[str, Any]]

    @property
    def raw_post(self) -> Mapping[str, Any] | None:
        if not self.items or not isinstance(self.items[0], Mapping):
            return None
        first = self.items[0]
        return first if is_post_record(first) else None

    @property
    def raw_comments(self) -> list[Mapping[str, Any]]:
        return flatten_comment_records(self.items)


def _extract_status_code(exc: BaseException) -> int | None:
    for attr in ("status_code", "statusCode", "status", "http_status"):
        val = getattr(exc, attr, None)
        if val is None:
            continue
        try:
            return int(val)
        except (TypeError, ValueError):
            continue
    return None


def _extract_body(exc: BaseException) -> str:
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message.strip():
        return message.strip()
    return str(exc)


class InstagramPostScraper:
    """
    Runs an Apify Actor (or saved Actor task) against one post URL and reads its dataset.

    Submission blocks up to ``apify.wait_secs`` for the run to finish. There is no
    retry: a failed job is treated as non-transient within a single request.
    """

    def __init__(
        self,
        token: str,
        *,
        apify: ApifyConfig,
        client: ApifyClient | None = None,
        logger: RunLogger | None = None,
    ) -> None:
        self._apify = apify
        self._logger = logger

        if client is not None:
            self._client = client
        else:
            # Client-level retries are disabled; the caller owns any retry policy.
            try:
                self._client = ApifyClient(token=token, max_retries=0)
            except TypeError:
                self._client = ApifyClient(token=token)

    @property
    def target(self) -> str:
        if self._apify.task_id:
            return f"task:{self._apify.task_id}"
        return str(self._apify.actor)

    def build_input(self, post_url: str) -> dict[str, Any]:
        return {
            "directUrls": [post_url],
            "postUrls": [post_url],
            "resultsLimit": int(self._apify.results_limit),
            "proxy": {"useApifyProxy": bool(self._apify.use_proxy)},
        }

    def submit(self, post_url: str) -> ActorRunRef:
        """Start the job and wait (up to the configured budget) for it to finish."""
        url = (post_url or "").strip()
        if not url:
            raise ScrapeJobError("A non-empty post URL is required")

        run_input = self.build_input(url)
        wait_secs = int(self._apify.wait_secs)

        try:
            if self._apify.task_id:
                result = self._client.task(self._apify.task_id).call(
                    task_input=run_input,
                    wait_secs=wait_secs,
                )
            else:
                result = self._client.actor(str(self._apify.actor)).call(
                    run_input=run_input,
                    wait_secs=wait_secs,
                )
        except ApifyApiError as e:
            raise ScrapeJobError(
                f"Apify run error ({self.target}): {e}",
                status=_extract_status_code(e),
                body=_extract_body(e),
            ) from e
        except Exception as e:
            raise ScrapeJobError(
                f"Unexpected error while running Apify job ({self.target}): {e}"
            ) from e

        if result is None:
            raise ScrapeJobError(f"Apify run failed ({self.target})")

        run_id = (result.get("id") or "").strip()
        dataset_id = (result.get("defaultDatasetId") or "").strip()
        status = (result.get("status") or "").strip().upper() or None
        if not run_id or not dataset_id:
            raise ScrapeJobError(
                f"No dataset id from Apify run ({self.target})",
                body=str(result),
            )

        if status in _FAILED_RUN_STATUSES:
            raise ScrapeJobError(
                f"Apify run {run_id} ended with status {status} ({self.target})",
                body=str(result.get("statusMessage") or ""),
            )

        ref = ActorRunRef(
            actor_id=self.target,
            run_id=run_id,
            default_dataset_id=dataset_id,
            status=status,
        )

        if self._logger is not None:
            if ref.finished:
                self._logger.info("scrape_job_finished", run_id=run_id, dataset_id=dataset_id)
            else:
                self._logger.warning(
                    "scrape_job_unfinished",
                    run_id=run_id,
                    dataset_id=dataset_id,
                    status=status,
                    wait_secs=wait_secs,
                )

        return ref

    def fetch_dataset_items(self, dataset_id: str, *, clean: bool = True) -> list[dict[str, Any]]:
        ds = (dataset_id or "").strip()
        if not ds:
            raise DatasetFetchError("dataset_id must be a non-empty string")

        try:
            items = list(self._client.dataset(ds).iterate_items(clean=clean))
        except ApifyApiError as e:
            raise DatasetFetchError(
                f"Apify items error ({ds}): {e}",
                status=_extract_status_code(e),
                body=_extract_body(e),
            ) from e
        except Exception as e:
            raise DatasetFetchError(f"Unexpected error while reading dataset ({ds}): {e}") from e

        out = [item for item in items if isinstance(item, dict)]
        if self._logger is not None:
            self._logger.info("scrape_dataset_fetched", dataset_id=ds, items=len(out))
        return out

    def scrape_and_fetch(self, post_url: str) -> ScrapeResult:
        run = self.submit(post_url)
        items = self.fetch_dataset_items(run.default_dataset_id)
        return ScrapeResult(run=run, items=items)
