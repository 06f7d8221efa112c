import json
import os
from unittest.mock import patch

import pytest

from config import Settings
from file_generator import FileGenerationError
from generator import EmptyProjectData, ProjectNotFound, SiteGenerator, page_file_name
from job_store import JobStore
from models import ArchitecturePlan, DeploymentResult, IntentAnalysis, JobStatus, PlannedFile, ValidationResult

PLAN = ArchitecturePlan(files=[
    PlannedFile(file_name="index.html", purpose="Home", kind="page"),
    PlannedFile(file_name="about.html", purpose="About", kind="page"),
    PlannedFile(file_name="app.js", purpose="Logic", kind="script"),
])


def fake_file(file_name, purpose, data, data_source, **kwargs):
    return f"<!-- {file_name} for {data_source} ({len(data)} records) -->"


@pytest.fixture
def settings(tmp_path, data_root):
    return Settings(data_root=data_root, generated_sites_dir=str(tmp_path / "sites"))


@pytest.fixture
def pipeline():
    """Patch every model-backed step the orchestrator calls."""
    with patch("generator.rephrase_intent", side_effect=lambda intent, **kw: f"Rephrased: {intent}") as rephrase, \
            patch("generator.analyze_intent", return_value=IntentAnalysis(data_source="movies",
                                                                          filters={"genre": "action"})) as analyze, \
            patch("generator.verify_data_source", side_effect=lambda detected, *a, **kw: detected) as verify, \
            patch("generator.plan_architecture", return_value=PLAN) as plan, \
            patch("generator.generate_file", side_effect=fake_file) as generate, \
            patch("generator.validate_and_fix_website", return_value=ValidationResult()) as validate, \
            patch("generator.deploy_to_vercel") as deploy:
        yield {
            "rephrase": rephrase, "analyze": analyze, "verify": verify, "plan": plan,
            "generate": generate, "validate": validate, "deploy": deploy,
        }


def run_job(settings, intent="show me action movies", **kwargs):
    store = JobStore()
    generator = SiteGenerator(settings, store)
    job = generator.start()
    return store, generator, generator.run(job.project_id, intent, **kwargs)


def test_start_marks_job_in_progress(settings):
    store = JobStore()
    job = SiteGenerator(settings, store).start()
    assert job.status == JobStatus.IN_PROGRESS
    assert job.public_url == f"/generated-sites/{job.project_id}/index.html"
    assert job.to_wire()["projectId"] == job.project_id


def test_full_run_writes_site_without_deploying(settings, pipeline):
    store, generator, job = run_job(settings)

    assert job.status == JobStatus.COMPLETED
    assert job.message == "Website generated successfully"
    assert job.deployed_url is None
    pipeline["deploy"].assert_not_called()

    project_dir = generator.project_dir(job.project_id)
    assert sorted(os.listdir(project_dir)) == ["about.html", "app.js", "data.json", "index.html"]
    with open(os.path.join(project_dir, "data.json"), encoding="utf-8") as f:
        assert [m["id"] for m in json.load(f)] == ["tt01", "tt04"]
    with open(os.path.join(project_dir, "index.html"), encoding="utf-8") as f:
        assert f.read() == "<!-- index.html for movies (2 records) -->"

    messages = [e.message for e in store.logs(job.project_id)]
    assert "Rephrased intent: Rephrased: show me action movies" in messages
    assert "Skipping deployment (VERCEL_TOKEN not set)" in messages


def test_steps_receive_the_right_intents(settings, pipeline):
    run_job(settings, "movies with a contact page", provider="anthropic")

    pipeline["analyze"].assert_called_once()
    assert pipeline["analyze"].call_args.args[0] == "Rephrased: movies with a contact page"
    assert pipeline["verify"].call_args.args[1] == "movies with a contact page"
    plan_call = pipeline["plan"].call_args
    assert plan_call.args[0] == "Rephrased: movies with a contact page"
    assert plan_call.kwargs["original_intent"] == "movies with a contact page"
    assert plan_call.kwargs["provider"] == "anthropic"
    for call in pipeline["generate"].call_args_list:
        assert call.kwargs["existing_pages"] == ["index.html", "about.html"]
        assert call.kwargs["intent"] == "movies with a contact page"


def test_files_are_generated_in_plan_order(settings, pipeline):
    run_job(settings)
    assert [c.args[0] for c in pipeline["generate"].call_args_list] == ["index.html", "about.html", "app.js"]


def test_verifier_correction_changes_collection(settings, pipeline):
    pipeline["verify"].side_effect = None
    pipeline["verify"].return_value = "companies"
    store, generator, job = run_job(settings, "our company website")

    with open(os.path.join(generator.project_dir(job.project_id), "data.json"), encoding="utf-8") as f:
        assert [c["id"] for c in json.load(f)] == ["c1", "c2", "c3"]
    assert pipeline["plan"].call_args.args[2] == "companies"


def test_deployment_success_sets_url(settings, pipeline):
    settings.vercel_token = "tok"
    pipeline["deploy"].return_value = DeploymentResult(success=True, deployed_url="https://site.vercel.app")
    _, _, job = run_job(settings)
    assert job.status == JobStatus.COMPLETED
    assert job.deployed_url == "https://site.vercel.app"
    assert job.message == "Website generated and deployed successfully"


def test_deployment_failure_still_completes(settings, pipeline):
    settings.vercel_token = "tok"
    pipeline["deploy"].return_value = DeploymentResult(success=False, error="Vercel authentication failed")
    store, _, job = run_job(settings)
    assert job.status == JobStatus.COMPLETED
    assert job.deployed_url is None
    assert job.message == "Website generated successfully"
    assert any(e.level == "warning" and "authentication" in e.message for e in store.logs(job.project_id))


def test_file_generation_failure_fails_job(settings, pipeline):
    pipeline["generate"].side_effect = FileGenerationError('Model did not return text content for "app.js".')
    store, _, job = run_job(settings)
    assert job.status == JobStatus.FAILED
    assert job.message == 'Model did not return text content for "app.js".'
    assert store.get(job.project_id).status == JobStatus.FAILED


def test_early_failure_fails_job(settings, pipeline):
    pipeline["analyze"].side_effect = RuntimeError("disk on fire")
    _, _, job = run_job(settings)
    assert job.status == JobStatus.FAILED
    assert job.message == "disk on fire"


def test_parallel_workers_write_the_same_files(settings, pipeline):
    settings.file_generation_workers = 3
    _, generator, job = run_job(settings)
    project_dir = generator.project_dir(job.project_id)
    assert job.status == JobStatus.COMPLETED
    for name in ("index.html", "about.html", "app.js"):
        with open(os.path.join(project_dir, name), encoding="utf-8") as f:
            assert f.read() == f"<!-- {name} for movies (2 records) -->"


@pytest.mark.parametrize("intent,expected", [
    ("Contact Us!", "contact-us.html"),
    ("Movies  in   Delhi", "movies-in-delhi.html"),
    ("???", "page.html"),
])
def test_page_file_name(intent, expected):
    assert page_file_name(intent) == expected


def make_project(settings, project_id, items):
    project_dir = os.path.join(settings.generated_sites_dir, project_id)
    os.makedirs(project_dir)
    with open(os.path.join(project_dir, "data.json"), "w", encoding="utf-8") as f:
        json.dump(items, f)
    with open(os.path.join(project_dir, "index.html"), "w", encoding="utf-8") as f:
        f.write("<html></html>")
    return project_dir


@patch("generator.generate_file", return_value="<html>drama</html>")
@patch("generator.analyze_intent", return_value=IntentAnalysis(data_source="movies", filters={}, limit=100))
def test_generate_page_adds_file_and_merges_data(mock_analyze, mock_generate, settings):
    project_dir = make_project(settings, "project-1700000000001-abc001", [{"id": "tt02", "Title": "Quiet Rooms"}])
    generator = SiteGenerator(settings, JobStore())

    result = generator.generate_page("project-1700000000001-abc001", "Drama Picks", context="only drama please")

    assert result == {
        "success": True,
        "fileName": "drama-picks.html",
        "filePath": os.path.join(project_dir, "drama-picks.html"),
        "publicUrl": "/generated-sites/project-1700000000001-abc001/drama-picks.html",
        "message": 'Page "drama-picks.html" generated successfully',
    }
    with open(os.path.join(project_dir, "drama-picks.html"), encoding="utf-8") as f:
        assert f.read() == "<html>drama</html>"
    with open(os.path.join(project_dir, "data.json"), encoding="utf-8") as f:
        assert [m["id"] for m in json.load(f)] == ["tt02"]

    call = mock_generate.call_args
    assert call.args[0] == "drama-picks.html"
    assert call.kwargs["existing_pages"] == ["index.html", "drama-picks.html"]
    assert "(Context: only drama please)" in call.args[1]


@patch("generator.generate_file", return_value="<html>action</html>")
@patch("generator.analyze_intent", return_value=IntentAnalysis(data_source="movies", filters={}, limit=100))
def test_generate_page_appends_only_new_records(mock_analyze, mock_generate, settings):
    project_dir = make_project(settings, "project-1700000000002-abc002", [{"id": "tt01", "Title": "Fast Lane"}])
    SiteGenerator(settings, JobStore()).generate_page("project-1700000000002-abc002", "Action", context="action")
    with open(os.path.join(project_dir, "data.json"), encoding="utf-8") as f:
        assert [m["id"] for m in json.load(f)] == ["tt01", "tt04"]


def test_generate_page_unknown_project(settings):
    with pytest.raises(ProjectNotFound):
        SiteGenerator(settings, JobStore()).generate_page("project-nope", "Contact")


def test_generate_page_empty_data(settings):
    make_project(settings, "project-1700000000003-abc003", [])
    with pytest.raises(EmptyProjectData):
        SiteGenerator(settings, JobStore()).generate_page("project-1700000000003-abc003", "Contact")


@pytest.mark.parametrize("project_id", ["../outside", "project-1700000000004-abc004/..", "", "PROJECT-1-ABCDEF"])
def test_generate_page_rejects_malformed_ids(settings, project_id):
    outside = os.path.join(os.path.dirname(settings.generated_sites_dir), "outside")
    os.makedirs(outside, exist_ok=True)
    with open(os.path.join(outside, "data.json"), "w", encoding="utf-8") as f:
        json.dump([{"id": "x1"}], f)

    with patch("generator.generate_file") as mock_generate, pytest.raises(ProjectNotFound):
        SiteGenerator(settings, JobStore()).generate_page(project_id, "Contact")

    mock_generate.assert_not_called()
    assert os.listdir(outside) == ["data.json"]
