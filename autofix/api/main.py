"""
HTTP surface of the patch lifecycle service.

Routes are thin: they translate request bodies into orchestrator, store and
signer calls and render domain errors through the exception handlers below.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from .admin import require_admin
from .schemas import AutoscanReposRequest, CheckRunRequest, DemoEditsRequest, ScanRequestModel
from ..agents.context import ContextFetcher
from ..agents.generator import FixGenerator
from ..agents.providers import GenerationProvider, build_provider
from ..core.autoscan import AutoscanService
from ..core.certificate import render_certificate_pdf
from ..core.config import VERSION, Settings
from ..core.errors import AutofixError, HostCredentialMissing, NotFound
from ..core.export import (
    attachment_header,
    build_zip,
    export_filename,
    parse_ids,
    record_json,
    records_json,
    select_records,
)
from ..core.orchestrator import ScanOrchestrator
from ..core.quota import demo_edits
from ..core.schema import PatchRecord
from ..core.signing import PatchSigner
from ..core.store import AutoscanRegistry, PatchStore, ProposalStore
from ..core.testgen import suggest_tests
from ..vcs.github import GitHubClient
from ..vcs.publisher import VcsPublisher
from util.logging import logger


@dataclass
class Services:
    """Every long-lived component, built once per application."""
    settings: Settings
    http: httpx.AsyncClient
    github: GitHubClient
    patches: PatchStore
    proposals: ProposalStore
    registry: AutoscanRegistry
    orchestrator: ScanOrchestrator
    signer: PatchSigner
    autoscan: AutoscanService


def build_services(settings: Settings, http: Optional[httpx.AsyncClient] = None,
                   provider: Optional[GenerationProvider] = None) -> Services:
    http = http or httpx.AsyncClient(timeout=settings.http_timeout_sec)
    github = GitHubClient(http, token=settings.github_token, api_url=settings.github_api_url)
    patches = PatchStore(settings.patches_path)
    proposals = ProposalStore(settings.proposals_path)
    registry = AutoscanRegistry(settings.autoscan_path)

    orchestrator = ScanOrchestrator(
        settings,
        fetcher=ContextFetcher(github, settings.sample_file_limit, settings.sample_char_limit),
        generator=FixGenerator(provider or build_provider(settings)),
        publisher=VcsPublisher(github, settings.branch_prefix, settings.commit_prefix),
        patches=patches,
        proposals=proposals,
    )
    return Services(
        settings=settings,
        http=http,
        github=github,
        patches=patches,
        proposals=proposals,
        registry=registry,
        orchestrator=orchestrator,
        signer=PatchSigner(patches, settings.signing_key, settings.signer_id),
        autoscan=AutoscanService(settings, registry, orchestrator),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


async def _require_patch(services: Services, patch_id: str) -> PatchRecord:
    record = await services.patches.get(patch_id)
    if record is None:
        raise NotFound("patch", patch_id)
    return record


@asynccontextmanager
async def lifespan(app: FastAPI):
    services: Services = app.state.services
    logger.log_config_issues(services.settings.validate())
    await services.autoscan.seed()
    services.autoscan.start()
    try:
        yield
    finally:
        await services.autoscan.stop()
        await services.http.aclose()


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AutofixError)
    async def autofix_error_handler(request: Request, exc: AutofixError):
        level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        logger.log_operation("request", "failed", {
            "path": request.url.path,
            "error": exc.__class__.__name__,
            "status": exc.status_code,
            "message": exc.message,
        }, level)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail},
                            headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = jsonable_encoder(exc.errors())
        message = "Invalid request"
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", []) if part != "body")
            message = f"Invalid request: {location} {first.get('msg', '')}".strip()
        return JSONResponse(status_code=400, content={"error": message, "details": errors})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle all unhandled exceptions."""
        logger.exception(f"Unhandled exception on {request.url.path}: {exc}")
        content = {"error": "Internal server error"}
        if request.app.state.settings.debug:
            content["debug"] = str(exc)
        return JSONResponse(status_code=500, content=content)


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    if services is not None:
        settings = services.settings
    settings = settings or Settings.from_env()
    logger.set_level(settings.log_level)
    services = services or build_services(settings)

    app = FastAPI(
        title="Repo Autofix API",
        version=VERSION,
        description="Security-fix generation with approval-gated pull request publication",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    @app.get("/health")
    async def health_check_endpoint(services: Services = Depends(get_services)):
        """Check service health and effective toggles."""
        autoscan = await services.autoscan.status()
        return {
            "status": "healthy",
            "version": VERSION,
            "generationProvider": services.settings.generation_provider,
            "autoPr": services.settings.auto_pr,
            "requireApproval": services.settings.require_approval,
            "demoFallback": services.settings.demo_fallback,
            "githubTokenConfigured": bool(services.settings.github_token),
            "autoscan": autoscan["status"],
        }

    # Scanning

    @app.post("/autofix")
    async def autofix_endpoint(body: ScanRequestModel, services: Services = Depends(get_services)):
        outcome = await services.orchestrator.run(body.to_request("autofix"))
        return outcome.to_dict()

    @app.post("/scan")
    async def scan_endpoint(body: ScanRequestModel, services: Services = Depends(get_services)):
        """Same pipeline as /autofix; direct publication does not depend on AUTO_PR."""
        outcome = await services.orchestrator.run(body.to_request("scan"))
        return outcome.to_dict()

    @app.post("/demo-edits")
    async def demo_edits_endpoint(body: Optional[DemoEditsRequest] = None,
                                  services: Services = Depends(get_services)):
        repo_url = body.repo_url if body and body.repo_url else ""
        edits = demo_edits(repo_url)
        record = await services.patches.add(
            PatchRecord.create(repo_url or "unknown", edits, "demo", demo_fallback=True)
        )
        logger.log_patch_persisted(record.id, record.repo_url, "demo", len(edits), True)
        return {"demo": True, "edits": [e.to_dict() for e in edits], "patchId": record.id}

    # Autoscan

    @app.get("/autoscan/repos")
    async def list_autoscan_repos(services: Services = Depends(get_services)):
        return {"repos": await services.registry.list()}

    @app.post("/autoscan/repos")
    async def save_autoscan_repos(body: AutoscanReposRequest, services: Services = Depends(get_services)):
        if not isinstance(body.repos, list):
            raise HTTPException(status_code=400, detail="repos must be an array")
        repos = await services.registry.save([str(r) for r in body.repos])
        logger.log_operation("autoscan.registry", "saved", {"count": len(repos)})
        return {"ok": True, "repos": repos}

    @app.post("/autoscan/run", dependencies=[Depends(require_admin)])
    async def run_autoscan(services: Services = Depends(get_services)):
        results = await services.autoscan.run_once()
        return {"ok": True, "results": [r.to_dict() for r in results]}

    @app.get("/autoscan/status")
    async def autoscan_status(services: Services = Depends(get_services)):
        return await services.autoscan.status()

    # Proposals

    @app.get("/proposals")
    async def list_proposals(status: Optional[str] = None, services: Services = Depends(get_services)):
        proposals = await services.proposals.list(status=status)
        return {"proposals": [p.to_dict() for p in proposals]}

    @app.get("/proposals/{proposal_id}")
    async def get_proposal(proposal_id: str, services: Services = Depends(get_services)):
        proposal = await services.proposals.get(proposal_id)
        if proposal is None:
            raise NotFound("proposal", proposal_id)
        return {"proposal": proposal.to_dict()}

    @app.post("/proposals/{proposal_id}/approve")
    async def approve_proposal(proposal_id: str, services: Services = Depends(get_services)):
        outcome = await services.orchestrator.approve(proposal_id)
        return outcome.to_dict()

    @app.post("/proposals/{proposal_id}/reject")
    async def reject_proposal(proposal_id: str, services: Services = Depends(get_services)):
        proposal = await services.orchestrator.reject(proposal_id)
        return {"ok": True, "proposal": proposal.to_dict()}

    # Patch records. Fixed paths are declared before /patches/{patch_id}.

    @app.get("/patches")
    async def list_patches(services: Services = Depends(get_services)):
        return {"patches": [p.to_dict() for p in await services.patches.list()]}

    @app.get("/patches/download-all")
    async def download_all_patches(services: Services = Depends(get_services)):
        records = await services.patches.list()
        return Response(content=records_json(records), media_type="application/json",
                        headers=attachment_header(export_filename("json")))

    @app.get("/patches/download-zip")
    async def download_patches_zip(ids: Optional[str] = None, services: Services = Depends(get_services)):
        records = select_records(await services.patches.list(), parse_ids(ids))
        return Response(content=build_zip(records), media_type="application/zip",
                        headers=attachment_header(export_filename("zip")))

    @app.get("/patches/{patch_id}")
    async def get_patch(patch_id: str, services: Services = Depends(get_services)):
        record = await _require_patch(services, patch_id)
        return {"patch": record.to_dict()}

    @app.get("/patches/{patch_id}/download")
    async def download_patch(patch_id: str, services: Services = Depends(get_services)):
        record = await _require_patch(services, patch_id)
        return Response(content=record_json(record), media_type="application/json",
                        headers=attachment_header(f"patch-{record.id}.json"))

    @app.post("/patches/{patch_id}/sign", dependencies=[Depends(require_admin)])
    async def sign_patch(patch_id: str, services: Services = Depends(get_services)):
        signature = await services.signer.sign(patch_id)
        return {"ok": True, **signature}

    @app.get("/patches/{patch_id}/certificate")
    async def get_certificate(patch_id: str, services: Services = Depends(get_services)):
        cert = await services.signer.certificate(patch_id)
        return {"certificate": cert.to_dict()}

    @app.get("/patches/{patch_id}/certificate.pdf")
    async def get_certificate_pdf(patch_id: str, services: Services = Depends(get_services)):
        cert = await services.signer.certificate(patch_id)
        return Response(content=render_certificate_pdf(cert), media_type="application/pdf",
                        headers=attachment_header(f"patch-{patch_id}-certificate.pdf"))

    @app.get("/patches/{patch_id}/verify")
    async def verify_patch(patch_id: str, services: Services = Depends(get_services)):
        record = await _require_patch(services, patch_id)
        valid = await services.signer.verify(patch_id)
        return {"id": patch_id, "signed": record.is_signed, "valid": valid}

    @app.post("/patches/{patch_id}/generate-tests")
    async def generate_tests(patch_id: str, services: Services = Depends(get_services)):
        record = await _require_patch(services, patch_id)
        return {"ok": True, "tests": [t.to_dict() for t in suggest_tests(record)]}

    # CI relay

    @app.post("/ci/check-run", dependencies=[Depends(require_admin)])
    async def create_check_run(body: CheckRunRequest, services: Services = Depends(get_services)):
        if not body.is_complete:
            raise HTTPException(status_code=400, detail="owner, repo and head_sha required")
        if not services.settings.github_token:
            raise HostCredentialMissing()
        data = await services.github.create_check_run(
            body.owner, body.repo, body.head_sha,
            name=body.name or f"{services.settings.commit_prefix} Scan",
            status=body.status,
            conclusion=body.conclusion,
            output=body.output,
        )
        logger.log_operation("ci.check_run", "success", {"repo": f"{body.owner}/{body.repo}",
                                                         "head_sha": body.head_sha})
        return {"ok": True, "checkRun": data}

    return app


app = create_app()
