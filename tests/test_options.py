from couloykv.options import KuloyOptions


def test_default_is_standalone():
    opts = KuloyOptions()
    assert opts.is_cluster() is False
    assert opts.peers == []


def test_set_cluster_peers():
    opts = KuloyOptions()
    opts.set_cluster_peers(1, "127.0.0.1:7001", "127.0.0.1:7002")
    assert opts.own == 1
    assert opts.peers == ["127.0.0.1:7001", "127.0.0.1:7002"]
    assert opts.is_cluster() is True


def test_set_cluster_peers_replaces_previous():
    opts = KuloyOptions(peers=["a:1"])
    opts.set_cluster_peers(0)
    assert opts.peers == []
    assert opts.is_cluster() is False


def test_standalone_settings_are_kept():
    settings = {"dir_path": "/tmp/data"}
    opts = KuloyOptions(standalone=settings)
    opts.set_cluster_peers(0, "h:1")
    assert opts.standalone is settings