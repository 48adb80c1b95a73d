"""Command line entry point."""

import json

from spikeimport.cli import create_config_from_args, main, parse_arguments

from conftest import SR


class TestArguments:

    def test_filter_and_flags(self):
        args = parse_arguments(['/data/s1', '--format', 'neurosuite', '--uid', '1', '3',
                                '--region', 'CA1', '--no-save', '--force-reload'])
        config = create_config_from_args(args)
        assert config.basepath == '/data/s1'
        assert config.format == 'neurosuite'
        assert config.unit_filter.uid == [1, 3]
        assert config.unit_filter.region == ['CA1']
        assert config.unit_filter.shank_id is None
        assert config.save_output is False
        assert config.force_reload is True

    def test_labels(self):
        config = create_config_from_args(parse_arguments(['.', '--labels', 'good', 'mua']))
        assert config.labels_to_include == ('good', 'mua')


class TestMain:

    def test_phy_import_prints_summary(self, phy_dir, tmp_path, capsys):
        session = tmp_path / "session.json"
        session.write_text(json.dumps({"name": "session", "sr": SR, "n_channels": 4,
                                       "electrode_groups": [[1, 2, 3, 4]]}))
        assert main([str(phy_dir), '--session', str(session), '--no-save']) == 0
        out = capsys.readouterr().out
        assert "numcells: 2" in out
        assert not (phy_dir / "session.spikes.cellinfo.pkl").exists()

    def test_unknown_format_fails(self, tmp_path):
        assert main([str(tmp_path), '--format', 'doesnotexist', '--no-save']) == 1
