"""
Tests for gnss_qc.network module.
"""

from functools import partial

import pytest
import numpy as np

from gnss_qc.network import select_station_alternatives
from gnss_qc.rinex import load_station


@pytest.fixture
def station_files(tmp_path, make_receiver, sample_times, write_rinex):
    """RINEX files of two complete stations and a sparse one."""
    sparse = np.zeros(len(sample_times), dtype=bool)
    sparse[:60] = True
    write_rinex(tmp_path / "good1.rnx", make_receiver(sample_times, name="good1", seed=1))
    write_rinex(tmp_path / "good2.rnx", make_receiver(sample_times, name="good2", seed=2))
    write_rinex(tmp_path / "sparse.rnx", make_receiver(sample_times, name="sparse", missing=sparse))
    return str(tmp_path / "{station}.rnx")


STATION_LIST = [["miss", "good1"], ["good2"], ["sparse", "miss2"]]


class TestSelectStationAlternatives:
    """Test station selection."""

    def test_first_usable_alternative(self, station_files, sample_times, config):
        """Test the first loadable alternative with enough data is chosen."""
        loader = partial(load_station, template=station_files, times=sample_times, config=config)

        selection = select_station_alternatives(STATION_LIST, loader, sample_times, config)

        assert selection.chosen.tolist() == [2, 1, 0]
        assert [r.name for r in selection.receivers] == ["good1", "good2"]
        reasons = {(event.station, event.reason.split(":")[0]) for event in selection.events}
        assert reasons == {
            ("miss", "not loaded"),
            ("sparse", "too few usable epochs"),
            ("miss2", "not loaded"),
        }

    def test_workers_agree(self, station_files, sample_times, config):
        """Test the choice does not depend on the number of workers."""
        loader = partial(load_station, template=station_files, times=sample_times, config=config)

        serial = select_station_alternatives(STATION_LIST, loader, sample_times, config)
        parallel = select_station_alternatives(STATION_LIST, loader, sample_times, config, n_workers=2)

        assert np.array_equal(serial.chosen, parallel.chosen)
        assert [r.name for r in parallel.receivers] == ["good1", "good2"]

    def test_max_station_count(self, station_files, sample_times, config):
        """Test the number of stations is limited in list order."""
        loader = partial(load_station, template=station_files, times=sample_times, config=config)

        selection = select_station_alternatives(
            STATION_LIST, loader, sample_times, config, max_station_count=1
        )

        assert [r.name for r in selection.receivers] == ["good1"]

    def test_lower_ratio(self, station_files, sample_times, config):
        """Test a lower ratio accepts the sparse station."""
        config = config._replace(min_estimable_epochs_ratio=0.5)
        loader = partial(load_station, template=station_files, times=sample_times, config=config)

        selection = select_station_alternatives(STATION_LIST, loader, sample_times, config)

        assert selection.chosen.tolist() == [2, 1, 1]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
