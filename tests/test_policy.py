from app.policy import ReceiptPolicy


def test_defaults_when_file_missing(tmp_path):
    policy = ReceiptPolicy(str(tmp_path / "missing.yaml"))
    assert policy.max_receipt_size_bytes == 50 * 1024 * 1024
    assert policy.receipts_collection == "payments"


def test_values_from_yaml(tmp_path):
    path = tmp_path / "receipt_vault.yaml"
    path.write_text("receipts:\n  max_size_mb: 5\n  collection: loan_payments\n")
    policy = ReceiptPolicy(str(path))
    assert policy.max_receipt_size_bytes == 5 * 1024 * 1024
    assert policy.receipts_collection == "loan_payments"


def test_invalid_yaml_falls_back(tmp_path):
    path = tmp_path / "receipt_vault.yaml"
    path.write_text("receipts: [unclosed\n")
    policy = ReceiptPolicy(str(path))
    assert policy.max_receipt_size_bytes == 50 * 1024 * 1024


def test_non_mapping_falls_back(tmp_path):
    path = tmp_path / "receipt_vault.yaml"
    path.write_text("- just\n- a list\n")
    assert ReceiptPolicy(str(path)).receipts_collection == "payments"


def test_reload_picks_up_changes(tmp_path):
    path = tmp_path / "receipt_vault.yaml"
    path.write_text("receipts:\n  max_size_mb: 1\n")
    policy = ReceiptPolicy(str(path))

    path.write_text("receipts:\n  max_size_mb: 2\n")
    policy.reload()
    assert policy.max_receipt_size_bytes == 2 * 1024 * 1024


def test_null_receipts_section_uses_defaults(tmp_path):
    path = tmp_path / "receipt_vault.yaml"
    path.write_text("receipts:\n")
    policy = ReceiptPolicy(str(path))
    assert policy.max_receipt_size_bytes == 50 * 1024 * 1024
    assert policy.receipts_collection == "payments"


def test_non_integer_size_uses_default(tmp_path):
    path = tmp_path / "receipt_vault.yaml"
    path.write_text("receipts:\n  max_size_mb: fifty\n  collection: null\n")
    policy = ReceiptPolicy(str(path))
    assert policy.max_receipt_size_bytes == 50 * 1024 * 1024
    assert policy.receipts_collection == "payments"


def test_numeric_string_size_is_coerced(tmp_path):
    path = tmp_path / "receipt_vault.yaml"
    path.write_text("receipts:\n  max_size_mb: '10'\n")
    assert ReceiptPolicy(str(path)).max_receipt_size_bytes == 10 * 1024 * 1024
