"""
Unit Tests for Coordinator Module (geocluster/coordinator)

Tests the Unbuilt/Ready state machine, pass-through when clustering is
disabled, fail-open behaviour, last-write-wins rebuilds and cluster
expansion.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

import geocluster.coordinator.region as region_module
from geocluster.coordinator import (
    ClusterExpansionHandler,
    ExpansionResult,
    RegionChangeCoordinator,
    RegionUpdate,
)
from geocluster.spatial import (
    ClusterConfig,
    ClusterIndex,
    EmptyInputError,
    InvalidConfigurationError,
    Point,
    UnknownClusterIdError,
)
from geocluster.viewport import Viewport

from tests.conftest import WORLD


WORLD_VIEW = Viewport(latitude=0.0, longitude=0.0, latitude_span=180.0, longitude_span=360.0)
TOKYO_VIEW = Viewport(latitude=35.68, longitude=139.73, latitude_span=0.2, longitude_span=0.2)


# ==============================================================================
# State Machine Tests
# ==============================================================================

class TestRegionChangeStates:
    """Test the Unbuilt -> Ready transitions."""

    def test_unbuilt_reports_viewport_only(self):
        """Test that an Unbuilt coordinator reports the viewport with no clusters."""
        coordinator = RegionChangeCoordinator()
        update = coordinator.on_region_change(TOKYO_VIEW)

        assert isinstance(update, RegionUpdate)
        assert update.viewport == TOKYO_VIEW
        assert update.clusters == ()
        assert update.generation is None
        assert not update.is_ready
        assert coordinator.state == "unbuilt"
        assert coordinator.region == TOKYO_VIEW

    def test_load_without_region_returns_none(self, sample_places):
        """Test loading before any region is known."""
        coordinator = RegionChangeCoordinator()

        assert coordinator.load(sample_places) is None
        assert coordinator.state == "ready"
        assert coordinator.index is not None

    def test_load_with_known_region_returns_clusters(self, sample_places):
        """Test that loading answers for the region already shown."""
        coordinator = RegionChangeCoordinator(region=TOKYO_VIEW)
        update = coordinator.load(sample_places)

        assert update.is_ready
        assert update.generation == coordinator.generation
        assert sum(c.point_count for c in update.clusters) == 4

    def test_region_seen_while_unbuilt_is_used_on_load(self, sample_places):
        """Test that a region received while Unbuilt is queried on load."""
        coordinator = RegionChangeCoordinator()
        coordinator.on_region_change(WORLD_VIEW)

        update = coordinator.load(sample_places)
        assert sum(c.point_count for c in update.clusters) == len(sample_places)

    def test_region_mapping_accepted(self, sample_places):
        """Test region dicts as emitted by map widgets."""
        coordinator = RegionChangeCoordinator()
        coordinator.load(sample_places)

        update = coordinator.on_region_change(
            {"latitude": 35.68, "longitude": 139.73, "latitudeDelta": 0.2, "longitudeDelta": 0.2}
        )
        assert update.viewport == TOKYO_VIEW
        assert update.zoom == 10
        assert update.bbox.west == pytest.approx(139.63)

    def test_zoom_clamped_to_config(self, sample_places):
        """Test zoom clamping to the configured range."""
        coordinator = RegionChangeCoordinator(ClusterConfig(min_zoom=2, max_zoom=12))
        coordinator.load(sample_places)

        assert coordinator.on_region_change(Viewport(35.68, 139.73, 1e-7, 1e-7)).zoom == 12
        assert coordinator.on_region_change(Viewport(0.0, 0.0, 0.0, 0.0)).zoom == 2

    def test_markers_changed(self, sample_places):
        """Test the markers-changed flag across repeated regions."""
        coordinator = RegionChangeCoordinator()
        coordinator.load(sample_places)

        assert coordinator.on_region_change(WORLD_VIEW).markers_changed
        assert not coordinator.on_region_change(WORLD_VIEW).markers_changed
        assert coordinator.on_region_change(TOKYO_VIEW).markers_changed

    def test_rebuild_marks_markers_changed(self, sample_places):
        """Test that a rebuild always reports new markers."""
        coordinator = RegionChangeCoordinator()
        coordinator.load(sample_places)
        coordinator.on_region_change(WORLD_VIEW)

        update = coordinator.load(sample_places)
        assert update.markers_changed


# ==============================================================================
# Configuration / Failure Tests
# ==============================================================================

class TestRegionChangeFailures:
    """Test fail-fast configuration and fail-open clustering."""

    def test_invalid_config_fails_fast(self, sample_places):
        """Test that invalid configs raise before any state changes."""
        with pytest.raises(InvalidConfigurationError):
            RegionChangeCoordinator(ClusterConfig(min_points=1))

        coordinator = RegionChangeCoordinator()
        with pytest.raises(InvalidConfigurationError):
            coordinator.load(sample_places, ClusterConfig(min_zoom=10, max_zoom=5))
        assert coordinator.state == "unbuilt"

    def test_empty_input_is_valid_by_default(self):
        """Test that zero points give an empty, ready coordinator."""
        coordinator = RegionChangeCoordinator()
        coordinator.load([])

        update = coordinator.on_region_change(WORLD_VIEW)
        assert update.is_ready
        assert update.clusters == ()

    def test_empty_input_can_be_rejected(self):
        """Test strict mode for empty input."""
        coordinator = RegionChangeCoordinator(allow_empty=False)

        with pytest.raises(EmptyInputError):
            coordinator.load([])

    def test_bad_points_fail_open(self):
        """Test that malformed points yield an empty cluster list."""
        coordinator = RegionChangeCoordinator()
        coordinator.load([{"name": "no coordinates"}])

        update = coordinator.on_region_change(WORLD_VIEW)
        assert update.is_ready
        assert update.clusters == ()

    def test_query_failure_fails_open(self, sample_places, monkeypatch):
        """Test that a failing query yields an empty cluster list."""
        coordinator = RegionChangeCoordinator()
        coordinator.load(sample_places)

        def boom(bbox, zoom):
            raise RuntimeError("query exploded")

        monkeypatch.setattr(coordinator.index, "get_clusters", boom)

        update = coordinator.on_region_change(WORLD_VIEW)
        assert update.clusters == ()
        assert update.is_ready

    def test_degenerate_viewport_does_not_raise(self, sample_places):
        """Test NaN viewports."""
        coordinator = RegionChangeCoordinator()
        coordinator.load(sample_places)

        update = coordinator.on_region_change(Viewport(float("nan"), 0.0, 1.0, float("nan")))
        assert update.clusters == ()


# ==============================================================================
# Disabled Clustering Tests
# ==============================================================================

class TestClusteringDisabled:
    """Test pass-through when clustering is disabled."""

    def test_passthrough_in_source_order(self, sample_places):
        """Test that disabled clustering passes points through in order."""
        coordinator = RegionChangeCoordinator(ClusterConfig(clustering_enabled=False))
        coordinator.load(sample_places)

        update = coordinator.on_region_change(TOKYO_VIEW)

        assert coordinator.index is None
        assert len(update.clusters) == 5
        assert all(c.point_count == 1 for c in update.clusters)
        assert [c.source_index for c in update.clusters] == [0, 1, 2, 3, 4]

    def test_passthrough_expansion(self, sample_places):
        """Test expanding a pass-through point."""
        coordinator = RegionChangeCoordinator(ClusterConfig(clustering_enabled=False))
        coordinator.load(sample_places)
        leaf = coordinator.on_region_change(WORLD_VIEW).clusters[3]

        result = coordinator.expand(leaf)
        assert result.source_indices == [3]
        assert result.leaves[0].radius == 300.0

    def test_enable_via_set_config(self, sample_places):
        """Test turning clustering on with a new config."""
        coordinator = RegionChangeCoordinator(ClusterConfig(clustering_enabled=False))
        coordinator.load(sample_places)

        coordinator.set_config(ClusterConfig(clustering_enabled=True))
        assert coordinator.index is not None
        assert coordinator.config.clustering_enabled


# ==============================================================================
# Rebuild Tests
# ==============================================================================

class TestRebuilds:
    """Test generation swaps and last-write-wins."""

    def test_rebuild_replaces_generation(self, sample_places):
        """Test that a reload swaps in a new generation."""
        coordinator = RegionChangeCoordinator()
        coordinator.load(sample_places)
        first = coordinator.generation

        coordinator.load(sample_places[:2])
        assert coordinator.generation != first
        assert len(coordinator.points) == 2

    def test_superseded_build_is_discarded(self, sample_places, close_triplet):
        """Test last-write-wins for overlapping loads."""
        coordinator = RegionChangeCoordinator()
        config = coordinator.config

        older = coordinator._next_request()
        newer = coordinator._next_request()

        coordinator._load(newer, close_triplet, config)
        current = coordinator.generation

        assert coordinator._load(older, sample_places, config) is None
        assert coordinator.generation == current
        assert len(coordinator.points) == len(close_triplet)

    def test_background_load(self, sample_places):
        """Test loading on a caller-supplied executor."""
        coordinator = RegionChangeCoordinator(region=WORLD_VIEW)

        with ThreadPoolExecutor(max_workers=1) as executor:
            future = coordinator.load_in_background(sample_places, executor=executor)
            update = future.result(timeout=30)

        assert coordinator.is_ready
        assert sum(c.point_count for c in update.clusters) == len(sample_places)

    def test_background_load_default_executor(self, sample_places):
        """Test loading on the coordinator's own worker."""
        coordinator = RegionChangeCoordinator()
        try:
            coordinator.load_in_background(sample_places).result(timeout=30)
            assert coordinator.is_ready
        finally:
            coordinator.close()

    def test_old_index_keeps_answering(self, sample_places):
        """Test that a replaced index still answers queries."""
        coordinator = RegionChangeCoordinator()
        coordinator.load(sample_places)
        old_index = coordinator.index
        before = old_index.get_clusters(WORLD, 5)

        coordinator.load(sample_places[:1])
        assert old_index.get_clusters(WORLD, 5) == before

    def test_region_change_during_reload_is_delivered_last(self, sample_places, monkeypatch):
        """Test that a region change racing a reload is never overtaken by the older region."""
        coordinator = RegionChangeCoordinator(region=WORLD_VIEW)
        coordinator.load(sample_places)

        delivered = []
        deliver = coordinator._deliver

        def recording_deliver(snapshot, viewport):
            update = deliver(snapshot, viewport)
            delivered.append(update.viewport)
            return update

        monkeypatch.setattr(coordinator, "_deliver", recording_deliver)

        racers = []

        class RaceOnSwap:
            """Fire a region change from another thread right after the swap."""

            def __init__(self, wrapped):
                self._wrapped = wrapped

            def __getattr__(self, name):
                return getattr(self._wrapped, name)

            def debug(self, msg, *args, **kwargs):
                if msg.startswith("Generation") and not racers:
                    racer = threading.Thread(target=coordinator.on_region_change, args=(TOKYO_VIEW,))
                    racers.append(racer)
                    racer.start()
                    racer.join(timeout=0.2)
                self._wrapped.debug(msg, *args, **kwargs)

        monkeypatch.setattr(region_module, "logger", RaceOnSwap(region_module.logger))

        update = coordinator.load(sample_places[:3])
        racers[0].join(timeout=30)

        assert not racers[0].is_alive()
        assert update.viewport == WORLD_VIEW
        assert delivered == [WORLD_VIEW, TOKYO_VIEW]
        assert coordinator.region == TOKYO_VIEW


# ==============================================================================
# Expansion Tests
# ==============================================================================

class TestExpansion:
    """Test the cluster expansion handler."""

    @pytest.fixture
    def loaded(self, close_triplet):
        coordinator = RegionChangeCoordinator()
        coordinator.load(close_triplet)
        return coordinator

    def test_expand_cluster(self, loaded):
        """Test expanding an aggregate into its leaves and box."""
        update = loaded.on_region_change(WORLD_VIEW)
        cluster = next(c for c in update.clusters if c.is_cluster)

        result = loaded.expand(cluster)

        assert isinstance(result, ExpansionResult)
        assert len(result.leaves) == cluster.point_count == 3
        assert sorted(result.source_indices) == [0, 1, 2]
        assert all(result.bbox.contains(lat, lng) for lat, lng in result.coordinates)
        assert result.bbox.south == 35.0
        assert result.bbox.north == 35.002
        assert result.expansion_zoom > update.zoom

    def test_expand_leaf(self, loaded):
        """Test expanding a single leaf."""
        update = loaded.on_region_change(WORLD_VIEW)
        leaf = next(c for c in update.clusters if not c.is_cluster)

        result = loaded.expand(leaf)
        assert result.source_indices == [3]
        assert result.expansion_zoom is None
        assert result.bbox.west == result.bbox.east == leaf.longitude

    def test_expand_is_idempotent(self, loaded):
        """Test that expanding twice gives the same result."""
        cluster = next(c for c in loaded.on_region_change(WORLD_VIEW).clusters if c.is_cluster)

        assert loaded.expand(cluster) == loaded.expand(cluster)

    def test_stale_cluster_rejected(self, loaded, close_triplet):
        """Test that clusters from an old generation are rejected."""
        cluster = next(c for c in loaded.on_region_change(WORLD_VIEW).clusters if c.is_cluster)

        loaded.load(close_triplet)

        with pytest.raises(UnknownClusterIdError):
            loaded.expand(cluster)

    def test_expand_before_load(self, close_triplet):
        """Test expansion while Unbuilt."""
        cluster = next(
            c for c in ClusterIndex.build(close_triplet).get_clusters(WORLD, 1) if c.is_cluster
        )
        with pytest.raises(UnknownClusterIdError):
            RegionChangeCoordinator().expand(cluster)

    def test_handler_checks_generation(self, close_triplet):
        """Test the handler's generation check."""
        first = ClusterIndex.build(close_triplet)
        second = ClusterIndex.build(close_triplet)
        cluster = next(c for c in first.get_clusters(WORLD, 1) if c.is_cluster)

        assert len(ClusterExpansionHandler(first).expand(cluster).leaves) == 3
        with pytest.raises(UnknownClusterIdError):
            ClusterExpansionHandler(second).expand(cluster)

    def test_expansion_keeps_point_metadata(self):
        """Test that leaves keep radius and properties."""
        points = [
            Point(10.0, 10.0, 0, radius=50.0, properties={"fillColor": "#00B386"}),
            Point(10.0001, 10.0, 1),
            Point(10.0, 10.0001, 2),
        ]
        coordinator = RegionChangeCoordinator()
        coordinator.load(points)
        cluster = next(c for c in coordinator.on_region_change(WORLD_VIEW).clusters if c.is_cluster)

        leaves = {p.source_index: p for p in coordinator.expand(cluster).leaves}
        assert leaves[0].radius == 50.0
        assert leaves[0].properties["fillColor"] == "#00B386"
