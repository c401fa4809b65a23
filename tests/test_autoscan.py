"""
Autoscan service - per-repository isolation, seeding and loop lifecycle.
"""

import asyncio

from autofix.core.autoscan import AutoscanService
from autofix.core.errors import GenerationFailed
from autofix.core.store import AutoscanRegistry
from conftest import REPO_URL, ScriptedProvider, edits_json
from test_orchestrator import make_orchestrator


def make_service(settings, fake_github, provider):
    orchestrator = make_orchestrator(settings, fake_github, provider)
    return AutoscanService(settings, AutoscanRegistry(settings.autoscan_path), orchestrator)


class TestRunOnce:

    def test_failures_do_not_abort_the_pass(self, settings, fake_github):
        """An invalid URL and a failing generation are recorded; later repos still run."""
        settings = settings.with_overrides(require_approval=True)
        provider = ScriptedProvider(GenerationFailed("model overloaded"), edits_json("src/app.js"))
        service = make_service(settings, fake_github, provider)

        async def scenario():
            await service.registry.save(["not-a-url", REPO_URL, "https://github.com/acme/gadgets"])
            return await service.run_once()

        results = asyncio.run(scenario())
        assert [r.result for r in results] == ["failed", "failed", "proposal"]
        assert "Invalid GitHub URL" in results[0].error
        assert results[1].error == "model overloaded"
        assert results[2].proposal_id
        assert service.passes == 1
        assert service.last_run_at

    def test_publishes_when_auto_pr_enabled(self, settings, fake_github):
        service = make_service(settings, fake_github, ScriptedProvider(edits_json("src/app.js")))

        async def scenario():
            await service.registry.save([REPO_URL])
            return await service.run_once()

        results = asyncio.run(scenario())
        assert results[0].result == "published"
        assert results[0].pr_url == "https://github.com/acme/widgets/pull/1"

    def test_no_patches_result(self, settings, fake_github):
        service = make_service(settings, fake_github, ScriptedProvider("[]"))

        async def scenario():
            await service.registry.save([REPO_URL])
            return await service.run_once()

        assert asyncio.run(scenario())[0].result == "no_patches"

    def test_empty_registry(self, settings, fake_github):
        service = make_service(settings, fake_github, ScriptedProvider())
        assert asyncio.run(service.run_once()) == []
        assert fake_github.requests == []


class TestSeedAndLifecycle:

    def test_seed_populates_empty_registry_only(self, settings, fake_github):
        settings = settings.with_overrides(autoscan_repos=(REPO_URL, REPO_URL))
        service = make_service(settings, fake_github, ScriptedProvider())

        async def scenario():
            seeded = await service.seed()
            await service.registry.save(["https://github.com/acme/other"])
            return seeded, await service.seed()

        seeded, second = asyncio.run(scenario())
        assert seeded == [REPO_URL]
        assert second == ["https://github.com/acme/other"]

    def test_disabled_service_does_not_start(self, settings, fake_github):
        service = make_service(settings, fake_github, ScriptedProvider())

        async def scenario():
            started = service.start()
            return started, await service.status()

        started, status = asyncio.run(scenario())
        assert started is False
        assert status["status"] == "disabled"

    def test_start_runs_a_pass_then_stops(self, settings, fake_github):
        settings = settings.with_overrides(autoscan_enabled=True, auto_pr=False)
        service = make_service(settings, fake_github, ScriptedProvider(edits_json("a.js")))

        async def scenario():
            await service.registry.save([REPO_URL])
            assert service.start()
            for _ in range(100):
                if service.passes:
                    break
                await asyncio.sleep(0.01)
            running = (await service.status())["status"]
            await service.stop()
            return running, await service.status()

        running, stopped = asyncio.run(scenario())
        assert running == "running"
        assert stopped["status"] == "stopped"
        assert stopped["passes"] == 1
        assert stopped["lastResults"][0]["result"] == "persisted"
