# /*
# Copyright 2026 The MultiKueue Lab Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Property-based tests for MultiKueue manifest wiring.

Whatever names a link uses, the manager resources must reference each
other consistently and the worker must mirror the manager's LocalQueue.
"""

import yaml
from hypothesis import given
from hypothesis import strategies as st

from multikueue_lab.config import MultiKueueLink, QueueQuota
from multikueue_lab.manifests import manager_manifests, render, worker_manifests


@st.composite
def dns_label(draw):
    """Generate RFC 1123 labels."""
    alphabet = "abcdefghijklmnopqrstuvwxyz0123456789"
    start = draw(st.sampled_from(alphabet))
    middle = draw(st.text(alphabet=alphabet + "-", max_size=20))
    end = draw(st.sampled_from(alphabet))
    return start + middle + end


@st.composite
def link(draw):
    return MultiKueueLink(
        cluster=draw(dns_label()),
        secret=draw(dns_label()),
        config=draw(dns_label()),
        admission_check=draw(dns_label()),
        cluster_queue=draw(dns_label()),
        local_queue=draw(dns_label()),
        kubeconfig_file=draw(dns_label()) + ".kubeconfig",
        namespace=draw(dns_label()),
        worker_cluster_queue=draw(st.none() | dns_label()),
        preemption=draw(st.booleans()),
    )


quotas = st.builds(
    QueueQuota,
    cpu=st.integers(min_value=1, max_value=512).map(str),
    memory=st.integers(min_value=1, max_value=1024).map(lambda n: f"{n}Gi"),
)


def _one(docs, kind):
    matches = [doc for doc in docs if doc["kind"] == kind]
    assert len(matches) == 1
    return matches[0]


@given(link(), quotas, st.booleans())
def test_manager_references_are_consistent(lnk, quota, include_default_queue):
    docs = manager_manifests(lnk, quota, include_default_queue=include_default_queue)

    cluster = _one(docs, "MultiKueueCluster")
    config = _one(docs, "MultiKueueConfig")
    check = _one(docs, "AdmissionCheck")
    cq = _one(docs, "ClusterQueue")

    assert cluster["spec"]["kubeConfig"]["location"] == lnk.secret
    assert cluster["metadata"]["name"] in config["spec"]["clusters"]
    assert check["spec"]["parameters"]["name"] == config["metadata"]["name"]
    assert cq["spec"]["admissionChecks"] == [check["metadata"]["name"]]
    assert ("preemption" in cq["spec"]) == lnk.preemption
    for lq in (doc for doc in docs if doc["kind"] == "LocalQueue"):
        assert lq["spec"]["clusterQueue"] == cq["metadata"]["name"]


@given(link(), quotas)
def test_worker_mirrors_manager_queue(lnk, quota):
    manager_lq = next(d for d in manager_manifests(lnk, quota) if d["kind"] == "LocalQueue")
    worker_docs = worker_manifests(lnk, quota)
    worker_lq = next(d for d in worker_docs if d["kind"] == "LocalQueue")
    worker_cq = _one(worker_docs, "ClusterQueue")

    assert worker_lq["metadata"] == manager_lq["metadata"]
    assert worker_lq["spec"]["clusterQueue"] == worker_cq["metadata"]["name"] == lnk.worker_queue
    assert "admissionChecks" not in worker_cq["spec"]


@given(link(), quotas)
def test_rendered_stream_keeps_every_document(lnk, quota):
    docs = manager_manifests(lnk, quota) + worker_manifests(lnk, quota)
    assert list(yaml.safe_load_all(render(docs))) == docs
