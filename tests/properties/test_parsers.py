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

"""Property-based tests for kubectl and system output parsers."""

from ipaddress import IPv4Address

from hypothesis import assume, given
from hypothesis import strategies as st

from multikueue_lab.colima import parse_default_gateway
from multikueue_lab.dispatch import parse_admission_states, pick_pod
from multikueue_lab.kueue import _seconds

names = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789-", min_size=1, max_size=20).filter(
    lambda s: s != "NAME")
states = st.lists(st.sampled_from(["Pending", "Ready", "Retry", "Rejected"]), max_size=3)


@st.composite
def pod_listing(draw):
    """Generate ``<timestamp> <name> <image>`` rows with unique timestamps and names."""
    count = draw(st.integers(min_value=0, max_value=8))
    pod_names = draw(st.lists(names, min_size=count, max_size=count, unique=True))
    images = draw(st.lists(st.sampled_from(["busybox:1.36", "nginx:1.27", "redis:7"]),
                           min_size=count, max_size=count))
    rows = [(f"2024-01-01T00:00:{i:02d}Z", name, image) for i, (name, image) in enumerate(zip(pod_names, images))]
    return rows


@given(pod_listing())
def test_pick_pod_is_newest_preferred(rows):
    listing = "\n".join(" ".join(row) for row in rows)
    picked = pick_pod([], listing)

    if not rows:
        assert picked is None
        return
    busybox = [row for row in rows if "busybox" in row[2]]
    assert picked == (busybox or rows)[-1][1]


@given(st.lists(names, min_size=1, max_size=3), pod_listing())
def test_pick_pod_prefers_labelled(labelled, rows):
    assert pick_pod(labelled, "\n".join(" ".join(row) for row in rows)) == labelled[0]


@given(st.dictionaries(names, states, max_size=6), st.booleans())
def test_parse_admission_states(workloads, with_header):
    lines = ["NAME QUEUE ADMISSION-CHECKS"] if with_header else []
    for name, checks in workloads.items():
        lines.append(f"{name} q {','.join(checks) or '<none>'}")
    assert parse_admission_states("\n".join(lines)) == workloads


@given(st.integers(min_value=0, max_value=10_000), st.sampled_from([("s", 1), ("m", 60), ("h", 3600)]))
def test_seconds(value, unit):
    suffix, factor = unit
    assert _seconds(f"{value}{suffix}") == value * factor


@given(st.ip_addresses(v=4))
def test_parse_default_gateway(addr):
    assume(not IPv4Address(addr).is_loopback)
    output = f"default via {addr} dev eth0 proto dhcp metric 100\n10.0.0.0/8 dev eth1\n"
    assert parse_default_gateway(output) == str(addr)
