from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_prefix": "JMRUNNER_"}

    # Storage roots: archived runs live under test_folder_base, in-flight runs
    # under temp_folder_base
    test_folder_base: str = "./tests"
    temp_folder_base: str = "./temp"

    # External test executor
    jmeter_executable: str = "jmeter"

    # Status views
    refresh_time: int = 30
    default_tail_lines: int = 1000
    base_url: str = ""

    # API keys (empty = no check)
    run_test_api_key: str = ""
    check_test_api_key: str = ""
    delete_test_api_key: str = ""

    # Space-separated label names used as extra dimensions on the duration
    # metric; empty means every label found in the test plan
    custom_labels: str = ""

    # HTTP
    host: str = "localhost"
    port: int = 80
    api_prefix: str = "/api/v1"
    max_body_mb: int = 10

    # Logging
    log_level: str = "INFO"
    silent: bool = False

    @property
    def custom_label_names(self) -> list[str]:
        return self.custom_labels.split()

    @property
    def public_url(self) -> str:
        return self.base_url or f"http://{self.host}:{self.port}"
