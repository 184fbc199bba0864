"""Basic package tests to verify installation."""


def test_package_imports() -> None:
    """Verify the main package can be imported."""
    import carepredict

    assert carepredict.__version__


def test_config_module_imports() -> None:
    """Verify config module structure is correct."""
    from carepredict.config import (
        MixedModelParams,
        ModelConfig,
        ModelFamily,
        ModelType,
        RandomForestParams,
        SinkConfig,
        build_config,
        load_config,
    )

    assert ModelConfig is not None
    assert ModelFamily is not None
    assert ModelType is not None
    assert RandomForestParams is not None
    assert MixedModelParams is not None
    assert SinkConfig is not None
    assert build_config is not None
    assert load_config is not None


def test_modeling_module_imports() -> None:
    """Verify the modeling layer exports its entry points."""
    from carepredict.modeling import (
        Deployment,
        DeploymentPhase,
        ModelTrainer,
        prepare,
        prepare_deployment,
        run_deployment,
        train_model,
    )

    assert Deployment is not None
    assert DeploymentPhase.DONE.value == "done"
    assert ModelTrainer is not None
    assert prepare is not None
    assert prepare_deployment is not None
    assert run_deployment is not None
    assert train_model is not None


def test_error_hierarchy() -> None:
    """Errors share a base class and map onto builtin categories."""
    from carepredict.errors import (
        CarePredictError,
        ConfigurationError,
        InsufficientDataError,
        ModelNotFoundError,
        SinkWriteError,
    )

    assert issubclass(ConfigurationError, ValueError)
    assert issubclass(ModelNotFoundError, FileNotFoundError)
    for error in (ConfigurationError, InsufficientDataError, ModelNotFoundError, SinkWriteError):
        assert issubclass(error, CarePredictError)
