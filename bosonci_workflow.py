# bosonci_workflow.py
# Builds the higgs-boson default Linux binaries and bakes them into the
# builder container image, then pushes it to the registry.
#
# BOSONCI_BASE_IMAGE / BOSONCI_CLONE_DEPTH pick between the bootstrap build
# (plain ubuntu, full clone) and the steady-state build (registry image,
# shallow clone). Registry login uses the REGISTRY_USER / REGISTRY_TOKEN
# secrets when BOSONCI_REGISTRY is set.
from __future__ import annotations

import os

from bosonci.config import Settings
from bosonci.dsl import clone, docker_build, docker_push, job, registry_login, sh, wf

IMAGE_NAME = "p/mp/higgs-boson/higgs-boson-builder"
DOCKCROSS_URL = os.environ.get("DOCKCROSS_URL", "https://github.com/dockcross/dockcross.git")


def builder_image_job(settings: Settings):
    share = f"{settings.share_dir}/higgs-boson"
    image = f"{settings.registry}/{IMAGE_NAME}" if settings.registry else "higgs-boson-builder"
    credentials = registry_login("REGISTRY_USER", "REGISTRY_TOKEN") if settings.registry else None

    return job(
        "Build Higgs-Boson Default Binaries and Builder container",
        sh(
            "Build Default Linux Binaries",
            f"""
            make build
            mkdir -p {share}/bin
            mkdir -p {share}/deps
            cp output/manual/bin/* {share}/bin/
            cp output/manual/deps/* {share}/deps/
            """,
            image=settings.base_image,
        ),
        clone(
            "Clone dockcross",
            DOCKCROSS_URL,
            ref="refs/heads/higgs-boson",
            dest="dockcross",
            depth=settings.clone_depth,
        ),
        docker_build(
            "Build builder image",
            context=share,
            file="dockcross/Dockerfile.higgs-boson.manual",
            image=image,
            labels={"vendor": "bitboson"},
        ),
        docker_push(
            "Push builder image",
            image,
            settings.image_tag,
            registry=settings.registry,
            credentials=credentials,
        ),
        paths=["**/Dockerfile*", "Makefile", "src/"],
    )


def workflow():
    return wf(builder_image_job(Settings.from_env()))
