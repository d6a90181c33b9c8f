from systemd_boot_friend.main import main as main
