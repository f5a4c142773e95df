from setuptools import setup

package_name = 'qyh_task_qr'

setup(
    name=package_name,
    version='1.0.0',
    packages=[package_name, f'{package_name}.skills'],
    install_requires=['setuptools'],
    extras_require={
        'test': ['pytest'],
    },
    python_requires='>=3.8',
    zip_safe=True,
    maintainer='qintxwd',
    maintainer_email='qintxwd@example.com',
    description='Quality-requirement tracking decorators for the QYH behavior tree task engine',
    license='MIT',
    entry_points={
        'console_scripts': [
            'qyh_qr_runner = qyh_task_qr.task_runner:main',
        ],
    },
)
