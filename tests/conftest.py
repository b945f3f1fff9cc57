from __future__ import annotations

import pytest

from app.domain.models import Settings
from app.services.provider import GitChartProvider

from helpers import GitChartRepo, at


@pytest.fixture
def chart_repo(tmp_path):
    """
    A repository with three commits under stable/:

    1. foo 1.0.0
    2. foo 1.0.0 with a changed template (same version) + bar 0.1.0
    3. foo 1.1.0 + a README at the base path (not a chart)
    """
    repo = GitChartRepo(tmp_path / "origin")
    repo.write_chart("foo", "1.0.0", files={"templates/cm.yaml": "kind: ConfigMap\nfirst: true\n"})
    repo.first = repo.commit("foo 1.0.0", at(1))

    repo.write("stable/foo/templates/cm.yaml", "kind: ConfigMap\nfirst: false\n")
    repo.write_chart("bar", "0.1.0", files={"values.yaml": "replicas: 1\n", "templates/deploy.yaml": "kind: Deployment\n"})
    repo.second = repo.commit("touch foo, add bar", at(2))

    repo.write_chart("foo", "1.1.0", files={"templates/cm.yaml": "kind: ConfigMap\nsecond: true\n"})
    repo.write("stable/README.md", "charts live here\n")
    repo.third = repo.commit("foo 1.1.0", at(3))
    return repo


@pytest.fixture
def settings_for(tmp_path):
    def _make(repo: GitChartRepo, **overrides) -> Settings:
        values = {"repo_url": repo.url, "clone_path": tmp_path / "clone"}
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def provider(chart_repo, settings_for):
    p = GitChartProvider(settings_for(chart_repo))
    p.initialize()
    yield p
    p.close()
