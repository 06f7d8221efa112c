import logging
import os
import re
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from architecture import plan_architecture
from config import Settings
from data_filter import (DATA_FILE, detect_data_source, filter_data, read_data_snapshot,
                         write_data_snapshot)
from deployer import deploy_to_vercel
from file_generator import generate_file
from intent_analyzer import analyze_intent
from intent_rephraser import rephrase_intent
from job_store import InvalidTransition, JobStore, is_job_id
from models import (DATA_SOURCES, ArchitecturePlan, DataItem, GenerationJob, IntentAnalysis,
                    JobStatus, PlannedFile, WebsiteDetails)
from source_verifier import verify_data_source
from validator import validate_and_fix_website

logger = logging.getLogger("site-generator")


class ProjectNotFound(LookupError):
    pass


class EmptyProjectData(ValueError):
    pass


def page_file_name(intent: str) -> str:
    slug = re.sub(r"\s+", "-", (intent or "").lower())
    slug = re.sub(r"[^a-z0-9-]", "", slug).strip("-")
    return f"{slug or 'page'}.html"


class SiteGenerator:
    """Runs the intent -> website pipeline for one job at a time per call.

    Every step gets the job's own logger, so jobs running side by side keep
    their log lines apart.
    """

    def __init__(self, settings: Settings, store: JobStore):
        self.settings = settings
        self.store = store

    def project_dir(self, job_id: str) -> str:
        return os.path.join(self.settings.generated_sites_dir, job_id)

    def public_url(self, job_id: str, file_name: str = "index.html") -> str:
        return f"{self.settings.public_base_path}/{job_id}/{file_name}"

    def start(self) -> GenerationJob:
        """Register a job and mark it in progress; the pipeline itself runs in ``run``."""
        job = self.store.create(message="Generation accepted")
        job_id = job.project_id
        job = self.store.transition(
            job_id,
            JobStatus.IN_PROGRESS,
            message="Generation started",
            project_path=self.project_dir(job_id),
            public_url=self.public_url(job_id),
        )
        logger.info("Created job %s", job_id)
        self.store.job_logger(job_id).info("Accepted generation request %s", job_id)
        return job

    def run(self, job_id: str, intent: str, provider: str = "openrouter",
            details: Optional[WebsiteDetails] = None) -> GenerationJob:
        log = self.store.job_logger(job_id)
        try:
            log.info("Rephrasing user intent...")
            rephrased = rephrase_intent(intent, provider=provider, log=log)
            log.info("Rephrased intent: %s", rephrased)

            analysis = analyze_intent(rephrased, provider=provider, log=log)

            log.info('Verifying data source: detected "%s", analysis returned "%s"',
                     detect_data_source(intent), analysis.data_source)
            verified = verify_data_source(analysis.data_source, intent, DATA_SOURCES, provider=provider, log=log)
            if verified != analysis.data_source:
                log.info("AI corrected data source: %s -> %s", analysis.data_source, verified)
                analysis = IntentAnalysis(data_source=verified, filters=analysis.filters, limit=analysis.limit)
            else:
                log.info("AI confirmed data source: %s", verified)

            data = filter_data(analysis.data_source, dict(analysis.filters, limit=analysis.limit),
                               self.settings.data_root, log=log)
            return self.generate_website(job_id, rephrased, analysis, data, provider=provider,
                                         details=details, original_intent=intent, log=log)
        except Exception as e:
            log.exception("Background generation for %s failed", job_id)
            return self._fail(job_id, e, log)

    def generate_website(self, job_id: str, intent: str, analysis: IntentAnalysis, data: List[DataItem],
                         provider: str = "openrouter", details: Optional[WebsiteDetails] = None,
                         original_intent: Optional[str] = None,
                         log: Optional[logging.Logger] = None) -> GenerationJob:
        log = log or self.store.job_logger(job_id)
        project_dir = self.project_dir(job_id)
        log.info("Starting generation for project %s", job_id)
        try:
            os.makedirs(project_dir, exist_ok=True)
            write_data_snapshot(project_dir, data)

            log.info("Planning architecture with %d records (%s)", len(data), analysis.data_source)
            self.store.update(job_id, message="Planning site architecture")
            plan = plan_architecture(intent, data, analysis.data_source, provider=provider,
                                     original_intent=original_intent, log=log)
            log.info("Planned %d files", len(plan.files))

            self.store.update(job_id, message=f"Generating {len(plan.files)} files")
            self._generate_files(project_dir, plan, data, analysis.data_source, provider,
                                 original_intent or intent, details, log)

            log.info("Validating generated files...")
            self.store.update(job_id, message="Validating generated files")
            validation = validate_and_fix_website(project_dir, plan.files, provider=provider, log=log)
            if validation.has_issues:
                log.info("Fixed %d files after validation", len(validation.fixed_files))
                if validation.fixed_files:
                    log.info("Fixed files: %s", ", ".join(validation.fixed_files))
            else:
                log.info("All files validated successfully")

            deployed_url = None
            if self.settings.vercel_token:
                log.info("Deploying to Vercel...")
                self.store.update(job_id, message="Deploying")
                deployment = deploy_to_vercel(project_dir, job_id, self.settings.vercel_token,
                                              timeout=self.settings.vercel_timeout, log=log)
                if deployment.success and deployment.deployed_url:
                    deployed_url = deployment.deployed_url
                    log.info("Deployed to %s", deployed_url)
                else:
                    log.warning("Deployment failed: %s", deployment.error)
            else:
                log.info("Skipping deployment (VERCEL_TOKEN not set)")

            job = self.store.transition(
                job_id,
                JobStatus.COMPLETED,
                message="Website generated and deployed successfully" if deployed_url else "Website generated successfully",
                project_path=project_dir,
                public_url=self.public_url(job_id),
                deployed_url=deployed_url,
            )
            log.info("Project %s completed successfully", job_id)
            return job
        except Exception as e:
            log.exception("Project %s failed", job_id)
            return self._fail(job_id, e, log)

    def _generate_files(self, project_dir: str, plan: ArchitecturePlan, data: List[DataItem], data_source: str,
                        provider: str, intent: str, details: Optional[WebsiteDetails], log: logging.Logger) -> None:
        pages = plan.pages

        def produce(planned: PlannedFile) -> str:
            log.info('Generating file "%s"...', planned.file_name)
            started = time.time()
            code = generate_file(planned.file_name, planned.purpose, data, data_source, provider=provider,
                                 intent=intent, existing_pages=pages, details=details, log=log)
            with open(os.path.join(project_dir, planned.file_name), "w", encoding="utf-8") as f:
                f.write(code)
            log.info('Generated "%s" (%d chars) in %dms', planned.file_name, len(code), (time.time() - started) * 1000)
            return planned.file_name

        workers = self.settings.file_generation_workers
        if workers <= 1:
            for planned in plan.files:
                produce(planned)
            return
        with ThreadPoolExecutor(max_workers=workers) as pool:
            list(pool.map(produce, plan.files))

    def _fail(self, job_id: str, error: Exception, log: logging.Logger) -> GenerationJob:
        message = str(error) or type(error).__name__
        try:
            return self.store.transition(job_id, JobStatus.FAILED, message=message)
        except InvalidTransition:
            log.error("Job %s already finished; not marking it failed", job_id)
            return self.store.get(job_id)

    def generate_page(self, project_id: str, intent: str, context: Optional[str] = None,
                      location: Optional[str] = None, provider: str = "openrouter") -> Dict[str, Any]:
        """Add one page to an existing project, reusing and extending its data snapshot."""
        if not is_job_id(project_id):
            raise ProjectNotFound("Project not found.")
        project_dir = self.project_dir(project_id)
        if not os.path.isdir(project_dir):
            raise ProjectNotFound("Project not found.")
        if not os.path.exists(os.path.join(project_dir, DATA_FILE)):
            raise ProjectNotFound("Project data not found.")
        existing = read_data_snapshot(project_dir)
        if not existing:
            raise EmptyProjectData("No data available in project.")

        log = self.store.job_logger(project_id)
        analysis = analyze_intent(intent, provider=provider, log=log)
        filters = dict(analysis.filters)
        if location:
            filters["location"] = location
        if context:
            lowered = context.lower()
            if "action" in lowered:
                filters["genre"] = "action"
            if "drama" in lowered:
                filters["genre"] = "drama"
        data = filter_data(analysis.data_source, dict(filters, limit=analysis.limit), self.settings.data_root, log=log)

        file_name = page_file_name(intent)
        purpose = f"Page for: {intent}"
        if context:
            purpose += f" (Context: {context})"
        if location:
            purpose += f" (Location: {location})"

        pages = sorted(f for f in os.listdir(project_dir) if f.endswith(".html"))
        if file_name not in pages:
            pages.append(file_name)

        log.info('Generating dynamic page "%s" for project %s', file_name, project_id)
        content = generate_file(file_name, purpose, data, analysis.data_source, provider=provider,
                                intent=intent, existing_pages=pages, details=None, log=log)
        page_path = os.path.join(project_dir, file_name)
        with open(page_path, "w", encoding="utf-8") as f:
            f.write(content)

        known = {item.get("id") for item in existing}
        merged = existing + [item for item in data if item.get("id") not in known]
        write_data_snapshot(project_dir, merged)

        return {
            "success": True,
            "fileName": file_name,
            "filePath": page_path,
            "publicUrl": self.public_url(project_id, file_name),
            "message": f'Page "{file_name}" generated successfully',
        }
